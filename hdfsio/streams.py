import io
import logging
from types import TracebackType
from typing import Optional, Type

from .codec import compression_codec
from .config import Configuration
from .fs import FileSystem
from .path import Path

logger = logging.getLogger(__name__)

ENCODING = 'utf-8'
LINE_SEPARATOR = '\n'


def open_input(fs: FileSystem, path: Path,
               config: Optional[Configuration] = None):
    '''Opens ``path`` for reading, decompressing by its suffix'''
    stream = fs.open_input(path)
    codec = compression_codec(path, config)
    if codec is None:
        return stream

    logger.debug('reading %s with %s', path, codec.name)
    try:
        return codec.create_input_stream(stream)
    except BaseException:
        stream.close()
        raise


def open_output(fs: FileSystem, path: Path,
                config: Optional[Configuration] = None):
    '''Creates ``path`` for writing, compressing by its suffix'''
    stream = fs.open_output(path)
    codec = compression_codec(path, config)
    if codec is None:
        return stream

    logger.debug('writing %s with %s', path, codec.name)
    try:
        return codec.create_output_stream(stream)
    except BaseException:
        stream.close()
        raise


def text_reader(stream) -> io.TextIOWrapper:
    '''Decodes a binary input stream as UTF-8 text

    ``\\r\\n`` and ``\\r`` line endings are read as ``\\n``.
    '''
    if not isinstance(stream, io.BufferedIOBase):
        # Wrap pyarrow streams for ``peek()`` and ``read1()``
        stream = io.BufferedReader(stream)
    return io.TextIOWrapper(stream, encoding=ENCODING)


def text_writer(stream) -> io.TextIOWrapper:
    '''Encodes text as UTF-8 into a binary output stream'''
    if not isinstance(stream, io.BufferedIOBase):
        stream = io.BufferedWriter(stream)
    return io.TextIOWrapper(stream, encoding=ENCODING,
                            newline=LINE_SEPARATOR)


class LineWriter(object):
    '''Appends lines to a text stream

    Each :meth:`write_line` writes the line followed by ``\\n``.
    Closing the writer closes the stream.
    '''

    def __init__(self, writer: io.TextIOBase):
        self._writer = writer

    def write_line(self, line='') -> None:
        self._writer.write(str(line))
        self._writer.write(LINE_SEPARATOR)

    def flush(self) -> None:
        self._writer.flush()

    @property
    def closed(self) -> bool:
        return self._writer.closed

    def close(self) -> None:
        self._writer.close()

    def __enter__(self) -> 'LineWriter':
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                 exc_value: Optional[BaseException],
                 traceback: Optional[TracebackType]) -> None:
        self.close()
