import functools
import os
import posixpath
import re
from typing import Optional, Union

from .errors import InvalidPath

_SCHEME_PATTERN = re.compile(r'[A-Za-z][A-Za-z0-9+.\-]*\Z')
_DUPLICATE_SLASHES = re.compile(r'/{2,}')

PathLike = Union[str, 'os.PathLike', 'Path']


def _normalize(path: str) -> str:
    path = _DUPLICATE_SLASHES.sub('/', path)
    if len(path) > 1 and path.endswith('/'):
        path = path[:-1]
    return path


class Path(object):
    """An immutable filesystem path with optional scheme and authority

    ``Path`` follows the URI conventions Hadoop uses to name files
    across filesystems::

        Path('hdfs://namenode:8020/user/alice/data')
        Path('s3://bucket/prefix/object.gz')
        Path('file:/tmp/local.txt')
        Path('relative/path')

    Duplicate and trailing slashes are dropped at construction time,
    so that ``str()`` of a path is its canonical form. A scheme
    without an authority prints as ``scheme:/path``; for example
    ``file:///tmp`` and ``file:/tmp`` are the same path.

    Use :func:`make_path` or the ``/`` operator to resolve children
    against a parent.

    Raises:
        InvalidPath: The string is empty, the scheme is malformed, or
            a scheme is followed by a relative path.
    """

    __slots__ = ('_scheme', '_authority', '_path')

    def __init__(self, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError('Path() expects str, got {}'.format(
                type(value).__name__))
        if not value:
            raise InvalidPath('Can not create a Path from an empty string')

        scheme = None
        authority = None
        start = 0

        colon = value.find(':')
        slash = value.find('/')
        if colon != -1 and (slash == -1 or colon < slash):
            scheme = value[:colon]
            if not _SCHEME_PATTERN.match(scheme):
                raise InvalidPath('Illegal scheme {!r} in {!r}'.format(
                    scheme, value))
            scheme = scheme.lower()
            start = colon + 1

        if value.startswith('//', start) and len(value) - start > 2:
            end = value.find('/', start + 2)
            if end == -1:
                end = len(value)
            authority = value[start + 2:end] or None
            start = end

        path = value[start:]
        if scheme is not None and not path.startswith('/'):
            if authority is not None and not path:
                path = '/'
            else:
                raise InvalidPath(
                    'Relative path in absolute URI: {!r}'.format(value))

        self._scheme = scheme
        self._authority = authority
        self._path = _normalize(path)

    @classmethod
    def _from_parts(cls, scheme: Optional[str], authority: Optional[str],
                    path: str) -> 'Path':
        obj = object.__new__(cls)
        obj._scheme = scheme
        obj._authority = authority
        obj._path = _normalize(path)
        return obj

    @property
    def scheme(self) -> Optional[str]:
        return self._scheme

    @property
    def authority(self) -> Optional[str]:
        return self._authority

    @property
    def path(self) -> str:
        '''The path component, without scheme and authority'''
        return self._path

    @property
    def name(self) -> str:
        return posixpath.basename(self._path)

    @property
    def parent(self) -> Optional['Path']:
        '''The parent directory, or ``None`` at a root

        A single relative segment has ``.`` as its parent.
        '''
        path = self._path
        if path == '/':
            return None
        index = path.rfind('/')
        if index == -1:
            parent = '.'
        elif index == 0:
            parent = '/'
        else:
            parent = path[:index]
        return self.with_path(parent)

    def is_absolute(self) -> bool:
        return self._path.startswith('/')

    def with_path(self, path: str) -> 'Path':
        '''Returns a path on the same scheme and authority'''
        return Path._from_parts(self._scheme, self._authority, path)

    def join(self, child: PathLike) -> 'Path':
        '''Resolves ``child`` against this path

        A child that carries its own scheme or authority is returned
        as is; an absolute child keeps this path's scheme and
        authority; a relative child is appended, and ``.`` and ``..``
        segments are collapsed.
        '''
        child = _coerce(child)
        if child.scheme is not None or child.authority is not None:
            return child
        if child.is_absolute():
            return self.with_path(child.path)
        return self.with_path(
            posixpath.normpath(posixpath.join(self._path, child.path)))

    def __truediv__(self, other: PathLike) -> 'Path':
        try:
            return self.join(other)
        except TypeError:
            return NotImplemented

    def __rtruediv__(self, other: PathLike) -> 'Path':
        try:
            return _coerce(other).join(self)
        except TypeError:
            return NotImplemented

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Path):
            return (self._scheme == other._scheme
                    and self._authority == other._authority
                    and self._path == other._path)
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self._scheme, self._authority, self._path))

    def __lt__(self, other: 'Path') -> bool:
        if not isinstance(other, Path):
            return NotImplemented
        return str(self) < str(other)

    def __str__(self) -> str:
        s = ''
        if self._scheme is not None:
            s += self._scheme + ':'
        if self._authority is not None:
            s += '//' + self._authority
        return s + self._path

    def __repr__(self) -> str:
        return "{}('{}')".format(type(self).__name__, str(self))

    def __setattr__(self, name, value):
        if hasattr(self, '_path'):
            raise AttributeError('Path is immutable')
        object.__setattr__(self, name, value)

    def __reduce__(self):
        return (Path, (str(self),))


def _coerce(arg) -> Path:
    if isinstance(arg, Path):
        return arg
    if isinstance(arg, os.PathLike):
        arg = os.fspath(arg)
    if isinstance(arg, bytes):
        arg = arg.decode('utf-8')
    return Path(str(arg))


def _make_child(parent: Path, child) -> Path:
    return parent.join(child)


def make_path(*args) -> Path:
    '''Builds a :class:`Path` from one or more segments

    The first argument is the base; the remaining ones are resolved
    one after another against the previous result, so that
    ``make_path(a, b, c) == make_path(make_path(a, b), c)``. Each
    argument may be a ``str``, an ``os.PathLike`` or a :class:`Path`;
    anything else is converted with ``str()``.

    Example::

        >>> make_path('hdfs://nn/user', 'alice', 'part-00000')
        Path('hdfs://nn/user/alice/part-00000')

    '''
    if not args:
        raise InvalidPath('make_path() needs at least one segment')
    return functools.reduce(_make_child, args[1:], _coerce(args[0]))


def is_path(arg) -> bool:
    '''Returns ``True`` if ``arg`` is a :class:`Path`'''
    return isinstance(arg, Path)
