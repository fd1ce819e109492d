import bz2
import gzip
import io
import logging
import os
import struct
import zlib
from types import TracebackType
from typing import Dict, Iterator, Optional, Tuple, Type

from .errors import FormatError
from .writable import Text, Writable, new_instance, read_exact, writable_class

logger = logging.getLogger(__name__)

MAGIC = b'SEQ'
VERSION = 6
SYNC_ESCAPE = -1
SYNC_HASH_SIZE = 16
SYNC_INTERVAL = 100 * (4 + SYNC_HASH_SIZE)

_DECOMPRESSORS = {
    'org.apache.hadoop.io.compress.DefaultCodec': zlib.decompress,
    'org.apache.hadoop.io.compress.DeflateCodec': zlib.decompress,
    'org.apache.hadoop.io.compress.GzipCodec': gzip.decompress,
    'org.apache.hadoop.io.compress.BZip2Codec': bz2.decompress,
}


def _read_text(stream) -> str:
    t = Text()
    t.read_fields(stream)
    return t.value


def _read_bool(stream) -> bool:
    return read_exact(stream, 1) != b'\x00'


def _read_int(stream) -> int:
    return struct.unpack('>i', read_exact(stream, 4))[0]


class SequenceFileReader(object):
    '''Reads records of a Hadoop SequenceFile

    The header tells the key and value types; records are decoded into
    fresh instances of them, see :mod:`hdfsio.writable`. Uncompressed
    and record-compressed files (``DefaultCodec``, ``GzipCodec``,
    ``BZip2Codec``) of versions 4 to 6 are supported.

    The reader is an iterator of ``(key, value)`` tuples and closes the
    underlying stream once the last record is read. Use it as a context
    manager to close it when iteration stops early::

        with SequenceFileReader(fs.open_input(path)) as reader:
            for key, value in reader:
                ...

    Args:
        stream: binary stream positioned at the start of the file. The
            reader owns it from now on.

    Raises:
        FormatError: The header is malformed, or the file is
            block-compressed or uses an unknown codec.
    '''

    def __init__(self, stream):
        self._stream = stream
        self.closed = False
        try:
            self._read_header()
        except BaseException:
            self.close()
            raise

    def _read_header(self):
        stream = self._stream
        magic = stream.read(len(MAGIC))
        if magic != MAGIC:
            raise FormatError('Not a SequenceFile')

        self.version = read_exact(stream, 1)[0]
        if not 4 <= self.version <= VERSION:
            raise FormatError('Unsupported SequenceFile version: {}'.format(
                self.version))

        self.key_class = _read_text(stream)
        self.value_class = _read_text(stream)
        self.compressed = _read_bool(stream)
        self.block_compressed = _read_bool(stream)

        self.codec_class = None
        if self.compressed and self.version >= 5:
            self.codec_class = _read_text(stream)
        elif self.compressed:
            self.codec_class = 'org.apache.hadoop.io.compress.DefaultCodec'

        self.metadata = {}  # type: Dict[str, str]
        if self.version >= 6:
            count = _read_int(stream)
            if count < 0:
                raise FormatError('Invalid metadata size: {}'.format(count))
            for _ in range(count):
                name = _read_text(stream)
                self.metadata[name] = _read_text(stream)

        self.sync = read_exact(stream, SYNC_HASH_SIZE)

        if self.block_compressed:
            raise FormatError('Block-compressed SequenceFiles are not '
                              'supported')
        self._decompress = None
        if self.compressed:
            self._decompress = _DECOMPRESSORS.get(self.codec_class)
            if self._decompress is None:
                raise FormatError('Unsupported codec: {}'.format(
                    self.codec_class))

        logger.debug('SequenceFile v%d key=%s value=%s codec=%s',
                     self.version, self.key_class, self.value_class,
                     self.codec_class)

    def _read_record_length(self) -> Optional[int]:
        data = self._stream.read(4)
        if not data:
            return None
        if len(data) < 4:
            raise FormatError('Truncated record length')
        return struct.unpack('>i', data)[0]

    def _next_raw(self) -> Optional[Tuple[bytes, bytes]]:
        length = self._read_record_length()
        if length == SYNC_ESCAPE:
            if read_exact(self._stream, SYNC_HASH_SIZE) != self.sync:
                raise FormatError('File is corrupt: sync check failed')
            length = self._read_record_length()
        if length is None:
            return None

        key_length = _read_int(self._stream)
        if length < 0 or key_length < 0 or key_length > length:
            raise FormatError('Invalid record lengths: {}/{}'.format(
                key_length, length))

        key = read_exact(self._stream, key_length)
        value = read_exact(self._stream, length - key_length)
        return key, value

    def _deserialize(self, writable: Writable, data: bytes) -> None:
        buf = io.BytesIO(data)
        writable.read_fields(buf)
        if buf.tell() != len(data):
            raise FormatError('{} read {} bytes, should read {}'.format(
                type(writable).__name__, buf.tell(), len(data)))

    def next_record(self, key: Writable, value: Writable) -> bool:
        '''Decodes the next record into ``key`` and ``value``

        Returns:
            ``True`` when a record was read; ``False`` at the end of
            the file, after closing the reader.
        '''
        if self.closed:
            return False

        raw = self._next_raw()
        if raw is None:
            self.close()
            return False

        key_data, value_data = raw
        if self._decompress is not None:
            try:
                value_data = self._decompress(value_data)
            except (OSError, EOFError, zlib.error) as e:
                raise FormatError('Cannot decompress record: {}'.format(
                    e)) from e

        self._deserialize(key, key_data)
        self._deserialize(value, value_data)
        return True

    def __iter__(self) -> Iterator[Tuple[Writable, Writable]]:
        return self

    def __next__(self) -> Tuple[Writable, Writable]:
        key = new_instance(self.key_class)
        value = new_instance(self.value_class)
        if self.next_record(key, value):
            return key, value
        raise StopIteration()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._stream.close()

    def __enter__(self) -> 'SequenceFileReader':
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                 exc_value: Optional[BaseException],
                 traceback: Optional[TracebackType]) -> None:
        self.close()


def _java_class(cls) -> str:
    if isinstance(cls, str):
        return cls
    return cls.java_class


class SequenceFileWriter(object):
    '''Writes an uncompressed version 6 SequenceFile

    Args:
        stream: writable binary stream; closed by :meth:`close`.
        key_class: Writable class (or Java class name) of the keys.
        value_class: Writable class (or Java class name) of the values.
        metadata (dict): string pairs stored in the header.
    '''

    def __init__(self, stream, key_class, value_class,
                 metadata: Optional[Dict[str, str]] = None):
        self._stream = stream
        self._pos = 0
        self.closed = False
        self.key_class = _java_class(key_class)
        self.value_class = _java_class(value_class)
        self.sync = os.urandom(SYNC_HASH_SIZE)

        header = io.BytesIO()
        header.write(MAGIC)
        header.write(bytes([VERSION]))
        Text(self.key_class).write(header)
        Text(self.value_class).write(header)
        header.write(b'\x00\x00')  # neither record nor block compressed
        metadata = metadata or {}
        header.write(struct.pack('>i', len(metadata)))
        for name, value in metadata.items():
            Text(name).write(header)
            Text(value).write(header)
        header.write(self.sync)

        self._write(header.getvalue())
        self._last_sync = self._pos

    def _write(self, data: bytes) -> None:
        self._stream.write(data)
        self._pos += len(data)

    def _wrap(self, obj, java_class: str) -> Writable:
        if isinstance(obj, Writable):
            if obj.java_class != java_class:
                raise TypeError('wrong class: {} is not {}'.format(
                    obj.java_class, java_class))
            return obj
        cls = writable_class(java_class)
        if cls is None:
            raise TypeError('Cannot wrap {!r} as {}'.format(obj, java_class))
        return cls(obj)

    def append(self, key, value) -> None:
        '''Appends a record

        ``key`` and ``value`` are Writables of the declared classes, or
        plain Python values to be wrapped in them.
        '''
        key_buf = io.BytesIO()
        self._wrap(key, self.key_class).write(key_buf)
        value_buf = io.BytesIO()
        self._wrap(value, self.value_class).write(value_buf)

        if self._pos >= self._last_sync + SYNC_INTERVAL:
            self._write(struct.pack('>i', SYNC_ESCAPE) + self.sync)
            self._last_sync = self._pos

        key_data = key_buf.getvalue()
        value_data = value_buf.getvalue()
        self._write(struct.pack('>ii', len(key_data) + len(value_data),
                                len(key_data)))
        self._write(key_data)
        self._write(value_data)

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._stream.close()

    def __enter__(self) -> 'SequenceFileWriter':
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                 exc_value: Optional[BaseException],
                 traceback: Optional[TracebackType]) -> None:
        self.close()
