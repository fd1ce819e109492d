import abc
import fnmatch
import logging
import posixpath
import re
import stat
from abc import abstractmethod
from types import TracebackType
from typing import BinaryIO, Dict, List, Optional, Type

from .config import Configuration
from .errors import FilesystemUnavailable, HdfsioError, PathNotFound
from .path import Path, make_path

logger = logging.getLogger(__name__)

_GLOB_MAGIC = re.compile(r'[*?\[]')
_BRACES = re.compile(r'\{([^{}]*)\}')


class FileStatus(abc.ABC):
    """Metadata snapshot of a file or directory

    :meth:`FileSystem.get_file_status` and
    :meth:`FileSystem.list_status` return objects of the subclass
    matching the backend. The snapshot is taken when queried and is
    never refreshed.

    Attributes:
        path (Path):
            Path of the entry, on the same scheme and authority as the
            queried path.
        length (int):
            Size in bytes. Directories may report 0 or a
            filesystem-specific size.
        mode (int):
            Permission with file type flag (regular file or directory).
            You can make a human-readable interpretation by
            `stat.filemode <https://docs.python.org/3/library/stat.html#stat.filemode>`_.
        modification_time (float):
            UNIX timestamp of mtime. Some filesystems do not have
            sub-second precision.
        owner (str): Owner name, ``None`` when unknown.
        group (str): Group name, ``None`` when unknown.

    """     # NOQA
    path = None
    length = None
    mode = None
    modification_time = None
    owner = None
    group = None

    def isdir(self) -> bool:
        return stat.S_ISDIR(self.mode)

    def isfile(self) -> bool:
        return stat.S_ISREG(self.mode)

    @property
    def permission(self) -> int:
        return stat.S_IMODE(self.mode)

    def __str__(self):
        if isinstance(self.mode, int):
            mode = stat.filemode(self.mode)
        else:
            mode = self.mode
        return '<{} path="{}" mode="{}" length={}>'.format(
            type(self).__name__, self.path, mode, self.length)

    def __repr__(self):
        return str(self.__str__())


class FileSystem(abc.ABC):
    '''Filesystem client abstraction

    A ``FileSystem`` is bound to the authority (host, bucket, ...) of
    the path it was resolved from, and to a :class:`Configuration`.
    Methods take :class:`Path` objects whose scheme and authority are
    not re-checked; use :func:`filesystem` to get the right instance.

    '''

    def __init__(self, authority: Optional[str] = None,
                 config: Optional[Configuration] = None):
        self.authority = authority
        if config is None:
            config = Configuration()
        self.config = config

    @abstractmethod
    def open_input(self, path: Path) -> BinaryIO:
        '''Opens ``path`` for reading and returns a binary stream

        Raises:
            PathNotFound: ``path`` does not exist.
            PermissionDenied: ``path`` is not readable.
        '''
        raise NotImplementedError()

    @abstractmethod
    def open_output(self, path: Path) -> BinaryIO:
        '''Creates or truncates ``path`` and returns a binary stream

        Missing parent directories are created.
        '''
        raise NotImplementedError()

    @abstractmethod
    def get_file_status(self, path: Path) -> FileStatus:
        '''Returns the :class:`FileStatus` of ``path``

        Raises:
            PathNotFound: ``path`` does not exist.
        '''
        raise NotImplementedError()

    @abstractmethod
    def list_status(self, path: Path) -> List[FileStatus]:
        '''Lists the immediate children of a directory

        For a file, the list holds the status of the file itself.

        Raises:
            PathNotFound: ``path`` does not exist.
        '''
        raise NotImplementedError()

    @abstractmethod
    def mkdirs(self, path: Path, permission: Optional[int] = None) -> bool:
        '''Makes ``path`` and all missing parents into directories

        Succeeds when the directory already exists.

        Raises:
            AlreadyExists: ``path`` or one of its parents is a file.
        '''
        raise NotImplementedError()

    @abstractmethod
    def rename(self, src: Path, dst: Path) -> bool:
        '''Renames ``src`` to ``dst``

        When ``dst`` is an existing directory, ``src`` is moved into
        it.

        Raises:
            PathNotFound: ``src`` does not exist.
            AlreadyExists: the destination exists.
        '''
        raise NotImplementedError()

    @abstractmethod
    def delete(self, path: Path, recursive: bool = True) -> bool:
        '''Deletes ``path``

        Returns:
            ``True`` if something was deleted, ``False`` when ``path``
            did not exist.
        '''
        raise NotImplementedError()

    def exists(self, path: Path) -> bool:
        try:
            self.get_file_status(path)
            return True
        except PathNotFound:
            return False

    def is_directory(self, path: Path) -> bool:
        try:
            return self.get_file_status(path).isdir()
        except PathNotFound:
            return False

    def is_file(self, path: Path) -> bool:
        try:
            return self.get_file_status(path).isfile()
        except PathNotFound:
            return False

    def glob_status(self, pattern: Path) -> List[FileStatus]:
        '''Returns the status of every path matching ``pattern``

        Each path component may use ``*``, ``?``, ``[abc]``,
        ``[^abc]`` and ``{alt1,alt2}``. The results are sorted by
        path; a pattern without matches yields an empty list.
        '''
        found = {}  # type: Dict[Path, FileStatus]
        for expanded in _expand_braces(pattern.path):
            for status in self._glob(pattern.with_path(expanded)):
                found[status.path] = status
        return [found[p] for p in sorted(found)]

    def _glob(self, pattern: Path) -> List[FileStatus]:
        components = [c for c in pattern.path.split('/') if c]
        if pattern.is_absolute():
            candidates = [pattern.with_path('/')]
        else:
            candidates = [pattern.with_path('.')]

        for component in components:
            if not _GLOB_MAGIC.search(component):
                candidates = [child_path(c, component) for c in candidates]
                continue

            regex = re.compile(
                fnmatch.translate(component.replace('[^', '[!')))
            matched = []
            for candidate in candidates:
                if not self.is_directory(candidate):
                    continue
                for status in self.list_status(candidate):
                    if regex.match(status.path.name):
                        matched.append(status.path)
            candidates = matched

        statuses = []
        for candidate in candidates:
            try:
                statuses.append(self.get_file_status(candidate))
            except PathNotFound:
                pass
        return statuses

    def copy_from_local(self, src: Path, dst: Path,
                        overwrite: bool = False,
                        delete_source: bool = False) -> bool:
        '''Copies ``src`` on the local filesystem to ``dst`` here'''
        from .fileutil import copy
        from .local import Local
        with Local() as local:
            return copy(local, src, self, dst,
                        delete_source=delete_source, overwrite=overwrite)

    def copy_to_local(self, src: Path, dst: Path,
                      delete_source: bool = False) -> bool:
        '''Copies ``src`` here to ``dst`` on the local filesystem

        An existing local destination file is overwritten.
        '''
        from .fileutil import copy
        from .local import Local
        with Local() as local:
            return copy(self, src, local, dst,
                        delete_source=delete_source, overwrite=True)

    def close(self) -> None:
        pass

    def __enter__(self) -> 'FileSystem':
        return self

    def __exit__(self, exc_type: Optional[Type[BaseException]],
                 exc_value: Optional[BaseException],
                 traceback: Optional[TracebackType]) -> None:
        self.close()

    def __repr__(self):
        return '{}(authority={!r})'.format(type(self).__name__,
                                          self.authority)


def child_path(parent: Path, name: str) -> Path:
    '''Returns the entry ``name`` directly under ``parent``

    ``name`` is taken literally, so that directory entries containing
    a colon are not mistaken for a scheme.
    '''
    if parent.path == '.':
        return parent.with_path(name)
    return parent.with_path(posixpath.join(parent.path, name))


def _expand_braces(pattern: str) -> List[str]:
    m = _BRACES.search(pattern)
    if m is None:
        return [pattern]
    expanded = []
    for alternative in m.group(1).split(','):
        expanded.extend(_expand_braces(
            pattern[:m.start()] + alternative + pattern[m.end():]))
    return expanded


_FILESYSTEMS = {}  # type: Dict[str, Type[FileSystem]]


def register_filesystem(scheme: str, cls: Type[FileSystem]) -> None:
    '''Registers ``cls`` as the filesystem for URIs with ``scheme``'''
    _FILESYSTEMS[scheme.lower()] = cls


def filesystem(path, config: Optional[Configuration] = None) -> FileSystem:
    '''Resolves the filesystem of ``path``

    The filesystem class is chosen by the scheme of ``path`` and bound
    to its authority. A path without scheme uses the scheme, and when
    it has no authority either, the authority of ``fs.defaultFS``. A
    custom scheme (see :meth:`Configuration.with_custom_scheme`) is
    replaced by its base scheme, and its options are merged into the
    configuration.

    No handle is cached; every call creates a new filesystem object.

    Raises:
        FilesystemUnavailable: The scheme is unknown or the filesystem
            could not be set up.
    '''
    path = make_path(path)
    if config is None:
        config = Configuration()

    scheme = path.scheme
    authority = path.authority
    if scheme is None:
        default = make_path(config['fs.defaultFS'])
        scheme = default.scheme or 'file'
        if authority is None:
            authority = default.authority

    custom = config.custom_scheme(scheme)
    if custom is not None:
        if 'scheme' not in custom:
            raise FilesystemUnavailable(
                'Custom scheme "{}" has no base scheme: {}'.format(
                    scheme, path))
        scheme = custom.pop('scheme')
        config = config.with_values(custom)

    cls = _FILESYSTEMS.get(scheme)
    if cls is None:
        raise FilesystemUnavailable(
            'No filesystem for scheme "{}": {}'.format(scheme, path))

    logger.debug('resolving %s as %s(%s)', path, cls.__name__, authority)
    try:
        return cls(authority, config)
    except HdfsioError:
        raise
    except (OSError, RuntimeError, ValueError) as e:
        raise FilesystemUnavailable(
            'Cannot connect to {}://{}: {}'.format(
                scheme, authority or '', e)) from e
