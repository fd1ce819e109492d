import grp
import io
import logging
import os
import pwd
import shutil
import stat
from typing import Optional

from .errors import AlreadyExists, PathNotFound, translate_errors
from .fs import FileStatus, FileSystem, child_path, register_filesystem

logger = logging.getLogger(__name__)


def crc_filename(filename: str) -> str:
    '''Returns the checksum sidecar name of ``filename``

    Hadoop's local filesystem keeps a CRC checksum of ``dir/name`` in
    the hidden file ``dir/.name.crc``.
    '''
    dirname, basename = os.path.split(filename)
    return os.path.join(dirname, '.' + basename + '.crc')


def _is_checksum_file(name: str) -> bool:
    return name.startswith('.') and name.endswith('.crc')


def _lookup(getter, id_):
    try:
        return getter(id_)[0]
    except KeyError:
        return None


class LocalFileStatus(FileStatus):
    """Detailed information of a POSIX file

    The information of file/directory is obtained through the `os.stat`.

    Attributes:
        path (Path): Derived from `~FileStatus`.
        length (int): Derived from `~FileStatus`.
            ``os.stat_result.st_size``.
        mode (int): Derived from `~FileStatus`. ``os.stat_result.st_mode``.
        modification_time (float): Derived from `~FileStatus`.
            ``os.stat_result.st_mtime``.
        last_accessed (float): ``os.stat_result.st_atime``.
        owner (str): Derived from `~FileStatus`.
        group (str): Derived from `~FileStatus`.
        uid (int): UID of owner in integer.
        gid (int): GID of the file in integer.
    """

    def __init__(self, _stat, path):
        self.path = path
        self.length = _stat.st_size
        self.mode = _stat.st_mode
        self.modification_time = _stat.st_mtime
        self.last_accessed = _stat.st_atime
        self.uid = _stat.st_uid
        self.gid = _stat.st_gid
        self.owner = _lookup(pwd.getpwuid, _stat.st_uid)
        self.group = _lookup(grp.getgrgid, _stat.st_gid)


class Local(FileSystem):
    '''Local POSIX filesystem

    Relative paths are resolved against the current working directory
    of the process. Checksum sidecar files (see :func:`crc_filename`)
    never show up in listings and globs, and are removed together with
    the file they belong to.
    '''

    def __init__(self, authority=None, config=None, **_):
        super().__init__(authority, config)
        self.buffer_size = self.config.get_int('io.file.buffer.size', -1)

    def open_input(self, path):
        with translate_errors(path):
            return io.open(path.path, 'rb', buffering=self.buffer_size)

    def open_output(self, path):
        with translate_errors(path):
            parent = os.path.dirname(path.path)
            if parent:
                os.makedirs(parent, exist_ok=True)
            return io.open(path.path, 'wb', buffering=self.buffer_size)

    def get_file_status(self, path):
        with translate_errors(path):
            return LocalFileStatus(os.stat(path.path), path)

    def list_status(self, path):
        with translate_errors(path):
            _stat = os.stat(path.path)
            if not stat.S_ISDIR(_stat.st_mode):
                return [LocalFileStatus(_stat, path)]

            statuses = []
            for e in os.scandir(path.path):
                if _is_checksum_file(e.name):
                    continue
                try:
                    _stat = e.stat()
                except FileNotFoundError:
                    # dangling symlink
                    _stat = e.stat(follow_symlinks=False)
                statuses.append(
                    LocalFileStatus(_stat, child_path(path, e.name)))
        return sorted(statuses, key=lambda s: s.path.name)

    def glob_status(self, pattern):
        return [s for s in super().glob_status(pattern)
                if not _is_checksum_file(s.path.name)]

    def mkdirs(self, path, permission: Optional[int] = None):
        with translate_errors(path):
            created = []
            dirname = path.path
            while dirname and not os.path.exists(dirname):
                created.append(dirname)
                dirname = os.path.dirname(dirname)
            if dirname and not os.path.isdir(dirname):
                raise AlreadyExists('File exists: {}'.format(dirname))

            os.makedirs(path.path, exist_ok=True)
            if permission is not None:
                for dirname in created:
                    os.chmod(dirname, permission)
        return True

    def rename(self, src, dst):
        with translate_errors(src):
            if not os.path.lexists(src.path):
                raise PathNotFound('No such file or directory: {}'.format(
                    src))
            target = dst.path
            if os.path.isdir(target):
                target = os.path.join(target, src.name)
            if os.path.lexists(target):
                raise AlreadyExists('Destination exists: {}'.format(target))

            logger.debug('rename %s to %s', src.path, target)
            os.rename(src.path, target)
        return True

    def delete(self, path, recursive=True):
        with translate_errors(path):
            if not os.path.lexists(path.path):
                return False

            if os.path.isdir(path.path) and not os.path.islink(path.path):
                if recursive:
                    shutil.rmtree(path.path)
                else:
                    os.rmdir(path.path)
            else:
                os.remove(path.path)
                crc = crc_filename(path.path)
                if os.path.exists(crc):
                    os.remove(crc)
        return True


register_filesystem('file', Local)
