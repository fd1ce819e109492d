'''Copy helpers working across two filesystems

Both functions stream raw bytes; compression codecs are not applied,
so a ``.gz`` file is copied as the gzip data it holds.
'''
import logging
import shutil
from typing import Optional, Union

from .errors import AlreadyExists, InvalidPath
from .fs import FileSystem, child_path
from .path import Path

logger = logging.getLogger(__name__)


def _check_dest(src_name: Optional[str], dst_fs: FileSystem, dst: Path,
                overwrite: bool) -> Path:
    if not dst_fs.exists(dst):
        return dst

    if dst_fs.is_directory(dst):
        if src_name is None:
            raise AlreadyExists('Target {} is a directory'.format(dst))
        return _check_dest(None, dst_fs, child_path(dst, src_name),
                           overwrite)
    elif not overwrite:
        raise AlreadyExists('Target {} already exists'.format(dst))
    return dst


def _check_not_nested(src_fs: FileSystem, src: Path, dst_fs: FileSystem,
                      dst: Path) -> None:
    if type(src_fs) is not type(dst_fs) or \
            src_fs.authority != dst_fs.authority:
        return
    src_path = src.path.rstrip('/') + '/'
    if dst.path == src.path or dst.path.startswith(src_path):
        raise InvalidPath('Cannot copy {} to its subdirectory {}'.format(
            src, dst))


def copy(src_fs: FileSystem, src: Path, dst_fs: FileSystem, dst: Path,
         delete_source: bool = False, overwrite: bool = False) -> bool:
    '''Copies a file or a directory tree between filesystems

    When ``dst`` is an existing directory, ``src`` is copied into it
    under its own name.

    Raises:
        PathNotFound: ``src`` does not exist.
        AlreadyExists: The destination exists and ``overwrite`` is not
            set, or the destination is an existing directory.
        InvalidPath: A directory is copied into itself.

    Returns:
        ``True`` on success. With ``delete_source``, the result of
        deleting ``src``.
    '''
    status = src_fs.get_file_status(src)
    dst = _check_dest(src.name, dst_fs, dst, overwrite)

    if status.isdir():
        _check_not_nested(src_fs, src, dst_fs, dst)
        dst_fs.mkdirs(dst)
        for child in src_fs.list_status(src):
            copy(src_fs, child.path, dst_fs,
                 child_path(dst, child.path.name),
                 delete_source=False, overwrite=overwrite)
    else:
        logger.debug('copy %s to %s', src, dst)
        with src_fs.open_input(src) as fin, dst_fs.open_output(dst) as fout:
            shutil.copyfileobj(fin, fout)

    if delete_source:
        return src_fs.delete(src, True)
    return True


def copy_merge(src_fs: FileSystem, src_dir: Path, dst_fs: FileSystem,
               dst_file: Path, delete_source: bool = False,
               add_string: Optional[Union[str, bytes]] = None) -> bool:
    '''Concatenates the files in ``src_dir`` into ``dst_file``

    Only the direct children which are regular files are merged, in
    the order of their paths. ``add_string`` is appended after each
    of them when given.

    Raises:
        AlreadyExists: ``dst_file`` exists.

    Returns:
        ``False`` if ``src_dir`` is not a directory, otherwise ``True``
        or, with ``delete_source``, the result of deleting ``src_dir``.
    '''
    dst_file = _check_dest(src_dir.name, dst_fs, dst_file, False)

    if not src_fs.is_directory(src_dir):
        return False

    if isinstance(add_string, str):
        add_string = add_string.encode('utf-8')

    contents = sorted(src_fs.list_status(src_dir), key=lambda s: s.path)
    with dst_fs.open_output(dst_file) as out:
        for status in contents:
            if not status.isfile():
                continue
            logger.debug('merge %s into %s', status.path, dst_file)
            with src_fs.open_input(status.path) as fin:
                shutil.copyfileobj(fin, out)
            if add_string is not None:
                out.write(add_string)

    if delete_source:
        return src_fs.delete(src_dir, True)
    return True
