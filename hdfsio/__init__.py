import io
import logging
from typing import (Any, Callable, Iterable, Iterator, List, Optional, Tuple,
                    Union)

from deprecation import deprecated

from hdfsio import fileutil
from hdfsio.codec import Codec, CodecFactory, compression_codec  # NOQA
from hdfsio.codec import register_codec  # NOQA
from hdfsio.config import Configuration  # NOQA
from hdfsio.errors import (AlreadyExists, FilesystemUnavailable,  # NOQA
                           FormatError, HdfsioError, InvalidPath,
                           PathNotFound, PermissionDenied)
from hdfsio.fs import FileStatus, FileSystem, filesystem  # NOQA
from hdfsio.fs import register_filesystem  # NOQA
from hdfsio.hdfs import Hdfs, HdfsFileStatus  # NOQA
from hdfsio.local import Local, LocalFileStatus, crc_filename  # NOQA
from hdfsio.path import Path, is_path, make_path  # NOQA
from hdfsio.s3 import S3  # NOQA
from hdfsio.sequencefile import (SequenceFileReader,  # NOQA
                                 SequenceFileWriter)
from hdfsio.streams import LineWriter, open_input, open_output
from hdfsio.streams import text_reader, text_writer
from hdfsio.version import __version__  # NOQA
from hdfsio.writable import Writable

logger = logging.getLogger(__name__)

PathType = Union[str, Path]


def _resolve(path: PathType,
             config: Optional[Configuration]) -> Tuple[FileSystem, Path]:
    path = make_path(path)
    return filesystem(path, config), path


def make_directory(path: PathType, *,
                   config: Optional[Configuration] = None) -> bool:
    """Makes ``path`` and all its missing parents into directories

    Nothing happens when the directory already exists.

    The ``path`` can be a POSIX path, a URI, or a :class:`Path`. So
    can it in all the other functions of this module.

    Raises:
        AlreadyExists: ``path`` or one of its parents is a file.
    """
    fs, path = _resolve(path, config)
    return fs.mkdirs(path)


def make_parents(path: PathType, permission: Optional[int] = None, *,
                 config: Optional[Configuration] = None) -> Optional[bool]:
    """Makes the parent directories of ``path``

    Args:
        path: the path whose parents are made. ``path`` itself is not
            created.
        permission (int): permission bits of the directories created,
            e.g. ``0o755``. The filesystem default when omitted.

    Returns:
        ``None`` if ``path`` is a root and has no parent.
    """
    parent = make_path(path).parent
    if parent is None:
        return None
    fs, parent = _resolve(parent, config)
    return fs.mkdirs(parent, permission)


def exists(path: PathType, *,
           config: Optional[Configuration] = None) -> bool:
    """Returns ``True`` when ``path`` exists

    Raises:
        PermissionDenied: the existence cannot be checked.
    """
    fs, path = _resolve(path, config)
    return fs.exists(path)


def is_directory(path: PathType, *,
                 config: Optional[Configuration] = None) -> bool:
    """Returns ``True`` if ``path`` is an existing directory"""
    fs, path = _resolve(path, config)
    return fs.is_directory(path)


def is_file(path: PathType, *,
            config: Optional[Configuration] = None) -> bool:
    """Returns ``True`` if ``path`` is an existing regular file"""
    fs, path = _resolve(path, config)
    return fs.is_file(path)


def delete(path: PathType, *,
           config: Optional[Configuration] = None) -> bool:
    """Deletes ``path`` recursively

    Returns:
        ``True`` if something was deleted, ``False`` if ``path`` did
        not exist. Deleting twice is not an error.
    """
    fs, path = _resolve(path, config)
    logger.debug('delete %s', path)
    return fs.delete(path, True)


def copy_from_local_file(source: PathType, destination: PathType,
                         overwrite: bool = False, *,
                         config: Optional[Configuration] = None
                         ) -> Tuple[Path, Path]:
    """Copies the local file or directory ``source`` to ``destination``

    The filesystem of ``destination`` receives the copy. When
    ``destination`` is an existing directory, ``source`` is copied into
    it.

    Raises:
        AlreadyExists: The destination exists and ``overwrite`` is not
            set.

    Returns:
        The tuple of the source and destination paths.
    """
    source = make_path(source)
    fs, destination = _resolve(destination, config)
    logger.debug('copy local %s to %s', source, destination)
    fs.copy_from_local(source, destination, overwrite=overwrite)
    return source, destination


def copy_to_local_file(source: PathType, destination: PathType, *,
                       config: Optional[Configuration] = None
                       ) -> Tuple[Path, Path]:
    """Copies ``source`` to ``destination`` on the local filesystem

    An existing local file is overwritten.

    Returns:
        The tuple of the source and destination paths.
    """
    fs, source = _resolve(source, config)
    destination = make_path(destination)
    logger.debug('copy %s to local %s', source, destination)
    fs.copy_to_local(source, destination)
    return source, destination


def copy_merge(source_dir: PathType, destination: PathType,
               delete_source: bool = False, overwrite: bool = False,
               add_string: Optional[Union[str, bytes]] = None, *,
               config: Optional[Configuration] = None) -> bool:
    """Concatenates all files in ``source_dir`` into ``destination``

    The regular files directly under ``source_dir`` are merged in the
    order of their paths, which is usually what sharded outputs such as
    ``part-00000``, ``part-00001``, ... need. Bytes are copied as they
    are; no codec is applied.

    Args:
        delete_source (bool): Delete ``source_dir`` after merging.
        overwrite (bool): Delete ``destination`` before merging. Without
            it, an existing destination is an error.
        add_string (str or bytes): Appended after each merged file.

    Raises:
        AlreadyExists: ``destination`` exists and ``overwrite`` is not
            set.

    Returns:
        ``False`` if ``source_dir`` is not a directory.
    """
    src_fs, source_dir = _resolve(source_dir, config)
    dst_fs, destination = _resolve(destination, config)
    if overwrite:
        dst_fs.delete(destination, True)
    return fileutil.copy_merge(src_fs, source_dir, dst_fs, destination,
                               delete_source=delete_source,
                               add_string=add_string)


def glob_status(pattern: PathType, *,
                config: Optional[Configuration] = None) -> List[FileStatus]:
    """Returns the status of all the paths matching ``pattern``

    See :meth:`FileSystem.glob_status` for the pattern syntax. Checksum
    files of the local filesystem never match.
    """
    fs, pattern = _resolve(pattern, config)
    return fs.glob_status(pattern)


def file_status(path: PathType, *,
                config: Optional[Configuration] = None
                ) -> Optional[FileStatus]:
    """Returns the :class:`FileStatus` of ``path``, or ``None``"""
    fs, path = _resolve(path, config)
    try:
        return fs.get_file_status(path)
    except PathNotFound:
        return None


def file_size(path: PathType, *,
              config: Optional[Configuration] = None) -> Optional[int]:
    """Returns the size of ``path`` in bytes, or ``None``"""
    status = file_status(path, config=config)
    if status is None:
        return None
    return status.length


def _walk(fs: FileSystem, path: Path, recursive: bool,
          include_directories: bool) -> Iterator[FileStatus]:
    for status in fs.list_status(path):
        if recursive and status.isdir():
            if include_directories:
                yield status
            yield from _walk(fs, status.path, recursive, include_directories)
        else:
            yield status


def list_status(path: PathType, recursive: bool = False,
                include_directories: bool = False, *,
                config: Optional[Configuration] = None) -> List[FileStatus]:
    """Lists the status of the entries in the directory ``path``

    Without ``recursive``, the immediate children are listed,
    directories included. With ``recursive``, every directory is
    replaced by the listing of its contents, depth first, so that only
    files remain; ``include_directories`` keeps each directory in
    front of its contents.

    Raises:
        PathNotFound: ``path`` does not exist.
    """
    fs, path = _resolve(path, config)
    return list(_walk(fs, path, recursive, include_directories))


@deprecated(deprecated_in='0.1.0', removed_in='0.2.0',
            current_version=__version__,
            details='Use list_status instead')
def list_file_status(path: PathType, recursive: bool = False, *,
                     config: Optional[Configuration] = None
                     ) -> List[FileStatus]:
    return list_status(path, recursive, include_directories=True,
                       config=config)


def _is_part_file(path: Path) -> bool:
    return any(c.startswith('part-') for c in path.path.split('/'))


def part_file_seq(directory: PathType, recursive: bool = False, *,
                  config: Optional[Configuration] = None) -> List[Path]:
    """Returns the paths of the part files in ``directory``

    Part files are the shards written by MapReduce-style jobs. Files
    with a path component starting with ``part-`` are part files;
    markers such as ``_SUCCESS`` and directories are left out.
    """
    return [status.path
            for status in list_status(directory, recursive, config=config)
            if not status.isdir() and _is_part_file(status.path)]


def input_stream(path: PathType, *,
                 config: Optional[Configuration] = None):
    """Opens ``path`` and returns a binary input stream

    Files whose name ends with the suffix of a compression codec
    (``.gz``, ``.bz2``, ...) are decompressed transparently.

    Raises:
        PathNotFound: ``path`` does not exist.
        PermissionDenied: ``path`` cannot be read.
    """
    fs, path = _resolve(path, config)
    return open_input(fs, path, config)


def output_stream(path: PathType, *,
                  config: Optional[Configuration] = None):
    """Creates ``path`` and returns a binary output stream

    An existing file is truncated. Files whose name ends with the
    suffix of a compression codec are compressed transparently.
    """
    fs, path = _resolve(path, config)
    return open_output(fs, path, config)


def buffered_reader(path: PathType, *,
                    config: Optional[Configuration] = None
                    ) -> io.TextIOWrapper:
    """Opens ``path`` as UTF-8 text for reading"""
    return text_reader(input_stream(path, config=config))


def buffered_writer(path: PathType, *,
                    config: Optional[Configuration] = None
                    ) -> io.TextIOWrapper:
    """Creates ``path`` as UTF-8 text for writing"""
    return text_writer(output_stream(path, config=config))


def line_writer(path: PathType, *,
                config: Optional[Configuration] = None) -> LineWriter:
    """Creates ``path`` and returns a :class:`LineWriter` on it"""
    return LineWriter(buffered_writer(path, config=config))


def read_lines(path: PathType, *,
               config: Optional[Configuration] = None) -> Iterator[str]:
    """Iterates over the lines of ``path``, without line terminators

    The file is opened when the first line is requested, and closed
    when the iterator is exhausted, closed, or garbage-collected. To
    stop early and release the file at once::

        lines = hdfsio.read_lines(path)
        with contextlib.closing(lines):
            header = next(lines)

    """
    with buffered_reader(path, config=config) as reader:
        for line in reader:
            if line.endswith('\n'):
                line = line[:-1]
            yield line


def _identity(x: Any) -> Any:
    return x


def write_lines(path: PathType, lines: Iterable[Any],
                transform: Optional[Callable[[Any], Any]] = None, *,
                config: Optional[Configuration] = None) -> None:
    """Writes each of ``lines`` to ``path`` followed by a newline

    Args:
        lines: the lines to write. Non-string items are converted by
            ``str()``.
        transform: applied to each line before writing.

    The file is closed even when writing fails.
    """
    if transform is None:
        transform = _identity
    with line_writer(path, config=config) as writer:
        for line in lines:
            writer.write_line(transform(line))


def rename(source: PathType, destination: PathType,
           overwrite: bool = False, *,
           config: Optional[Configuration] = None) -> bool:
    """Renames ``source`` to ``destination``

    A ``destination`` without scheme and authority is taken on the
    filesystem of ``source``. When ``destination`` is an existing
    directory, ``source`` is moved into it.

    Args:
        overwrite (bool): Delete an existing ``destination`` first.

    Raises:
        PathNotFound: ``source`` does not exist.
        AlreadyExists: ``destination`` exists and ``overwrite`` is not
            set. Neither path is changed.
        InvalidPath: ``destination`` is on another filesystem.
    """
    fs, source = _resolve(source, config)
    destination = make_path(destination)
    if destination.scheme is not None or destination.authority is not None:
        dst_fs = filesystem(destination, config)
        if type(dst_fs) is not type(fs) or dst_fs.authority != fs.authority:
            raise InvalidPath('Wrong filesystem: {}, expected: {}'.format(
                destination, source))

    if overwrite and fs.exists(destination):
        logger.debug('overwrite %s', destination)
        fs.delete(destination, True)
    return fs.rename(source, destination)


def sequence_file_seq(path: PathType, *,
                      config: Optional[Configuration] = None
                      ) -> Iterator[Tuple[Writable, Writable]]:
    """Iterates over the records of a SequenceFile as ``(key, value)``

    Each record is decoded into new key and value objects of the types
    declared in the file header, e.g. :class:`hdfsio.writable.Text`.
    The file is opened when the first record is requested, and closed
    when the iterator is exhausted, closed, or garbage-collected.

    Raises:
        FormatError: the file is not a supported SequenceFile.
    """
    fs, path = _resolve(path, config)
    with SequenceFileReader(fs.open_input(path)) as reader:
        yield from reader
