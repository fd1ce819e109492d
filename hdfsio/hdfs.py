import getpass
import logging
import os
import re
import shutil
import subprocess
from typing import Optional, Tuple
from xml.etree import ElementTree

import pyarrow
from pyarrow.fs import FileSelector, FileType, HadoopFileSystem

from .errors import (AlreadyExists, FilesystemUnavailable, PathNotFound,
                     translate_errors)
from .fs import FileStatus, FileSystem, child_path, register_filesystem
from .path import make_path

logger = logging.getLogger(__name__)
logger.addHandler(logging.StreamHandler())

# Keys handed to libhdfs as they are
_EXTRA_CONF_PREFIXES = ('dfs.', 'hadoop.', 'ipc.', 'fs.hdfs.')
_RESERVED_KEYS = ('dfs.replication', 'dfs.blocksize', 'hadoop.user')


def _parse_principal_name_from_klist(output):
    lines = output.split('\n')
    if len(lines) < 2:
        return None

    pattern = re.compile(
        r'Default principal: (?P<username>.+)@(?P<service>.+)')
    ret = pattern.match(lines[1])
    if ret:
        return ret.group('username')
    return None


def _parse_principal_name_from_keytab(output):
    lines = output.split('\n')
    if len(lines) < 4:
        return None

    pattern = re.compile(r'\s+\d+ (?P<username>.+)@(?P<service>.+)')
    ret = pattern.match(lines[3])
    if ret:
        return ret.group('username')
    return None


def _run_klist(use_keytab=False):
    command = ['klist']
    if use_keytab:
        command += ['-k']
    try:
        pipe = subprocess.Popen(command, stdout=subprocess.PIPE,
                                stderr=subprocess.PIPE)
        out, err = pipe.communicate()
    except OSError:
        # klist is not found
        return None

    if out == b'' and err != b'':
        return None
    return out


def _get_principal_name():
    output = _run_klist()
    if output is not None:
        name = _parse_principal_name_from_klist(output.decode('utf-8'))
        if name is not None:
            return name

    output = _run_klist(use_keytab=True)
    if output is not None:
        name = _parse_principal_name_from_keytab(output.decode('utf-8'))
        if name is not None:
            return name

    return getpass.getuser()


def _ensure_arrow_envs(hadoop_home):
    if os.getenv("ARROW_LIBHDFS_DIR") is not None:
        return

    for subdir in ("lib", "lib/native"):
        arrow_dir = os.path.join(hadoop_home, subdir)
        if os.path.exists(os.path.join(arrow_dir, "libhdfs.so")):
            os.environ["ARROW_LIBHDFS_DIR"] = arrow_dir
            return

    raise RuntimeError(
        "No libhdfs.so found from $HADOOP_HOME: {}".format(hadoop_home))


def _prepare_environment():
    # Typically, /opt/cloudera/parcels/CDH/lib
    hadoop_home = os.getenv("HADOOP_HOME")
    if hadoop_home:
        _ensure_arrow_envs(hadoop_home)

    if os.getenv("CLASSPATH") is None and shutil.which("hdfs"):
        cmd = ["hdfs", "classpath", "--glob"]
        cp = subprocess.run(cmd, stdout=subprocess.PIPE)
        cp.check_returncode()
        os.environ["CLASSPATH"] = cp.stdout.decode().strip()

    if not os.getenv("CLASSPATH"):
        raise RuntimeError("CLASSPATH not defined and no hdfs command found")


def _nameservice_from_site_xml() -> Optional[str]:
    confdir = os.getenv('HADOOP_CONF_DIR', '/etc/hadoop/conf')
    conffile = os.path.join(confdir, 'hdfs-site.xml')
    if not os.path.exists(conffile):
        return None

    configs = {}
    for e in ElementTree.parse(conffile).findall('./property'):
        name = e.findtext('name')
        if name:
            configs[name] = e.findtext('value')

    # With several name services, the very first one wins
    for nameservice in (configs.get('dfs.nameservices') or '').split(','):
        if nameservice.strip():
            return nameservice.strip()
    return None


def _namenode(authority, config) -> Tuple[str, int]:
    if authority is None:
        default = make_path(config['fs.defaultFS'])
        if default.scheme == 'hdfs':
            authority = default.authority
    if authority is None:
        authority = _nameservice_from_site_xml()
    if authority is None:
        raise RuntimeError('No HDFS namenode in path, fs.defaultFS '
                           'or hdfs-site.xml')

    host, sep, port = authority.rpartition(':')
    if sep and port.isdigit():
        return host, int(port)
    # Port 0 lets libhdfs look up the name service in its configuration
    return authority, 0


class HdfsFileStatus(FileStatus):
    """Detailed information of a file in HDFS

    Attributes:
        path (Path): Derived from `~FileStatus`.
        length (int): Derived from `~FileStatus`.
        mode (int): Derived from `~FileStatus`. Only the file type bits
            are set; permissions are not exposed by libhdfs.
        modification_time (float): Derived from `~FileStatus`.
            No sub-second precision.
    """

    def __init__(self, info, path):
        self._info = info

        mode = 0
        if info.type == FileType.File:
            mode |= 0o100000
        elif info.type == FileType.Directory:
            mode |= 0o40000

        self.path = path
        self.mode = mode
        self.length = info.size or 0
        if info.mtime is not None:
            self.modification_time = info.mtime.timestamp()


class Hdfs(FileSystem):
    '''Hadoop FileSystem wrapper

    The namenode is taken from the path authority
    (``hdfs://namenode:8020/...``), from ``fs.defaultFS``, or from the
    first name service in ``$HADOOP_CONF_DIR/hdfs-site.xml``, in this
    order. The user is ``hadoop.user``, the default principal of the
    Kerberos ticket cache or keytab, or the login name.

    To use HDFS, ``$HADOOP_HOME`` should be predefined so that
    ``libhdfs.so`` can be found. If it is not defined,
    ``ARROW_LIBHDFS_DIR`` must be defined instead. ``$CLASSPATH`` will
    be needed in case ``hdfs`` command is not available from ``$PATH``.

    Options with ``dfs.``, ``hadoop.``, ``ipc.`` and ``fs.hdfs.``
    prefixes are passed to libhdfs as they are.
    '''

    def __init__(self, authority=None, config=None, **_):
        super().__init__(authority, config)
        _prepare_environment()

        self.host, self.port = _namenode(authority, self.config)
        self.username = self.config.get('hadoop.user') or \
            _get_principal_name()

        extra_conf = {k: v for k, v in self.config.items()
                      if k.startswith(_EXTRA_CONF_PREFIXES)
                      and k not in _RESERVED_KEYS}
        kwargs = dict(user=self.username, extra_conf=extra_conf,
                      buffer_size=self.config.get_int('io.file.buffer.size'))
        replication = self.config.get_int('dfs.replication')
        if replication:
            kwargs['replication'] = replication
        blocksize = self.config.get_int('dfs.blocksize')
        if blocksize:
            kwargs['default_block_size'] = blocksize
        if os.getenv('KRB5CCNAME'):
            kwargs['kerb_ticket'] = os.getenv('KRB5CCNAME')

        logger.debug('connecting to hdfs://%s:%d as %s',
                     self.host, self.port, self.username)
        try:
            self._fs = HadoopFileSystem(self.host, self.port, **kwargs)
        except (OSError, pyarrow.lib.ArrowException) as e:
            raise FilesystemUnavailable(
                'Cannot connect to HDFS {}:{}: {}'.format(
                    self.host, self.port, e)) from e

    def _info(self, path):
        return self._fs.get_file_info(path.path)

    def open_input(self, path):
        with translate_errors(path):
            info = self._info(path)
            if info.type == FileType.NotFound:
                raise PathNotFound('No such file: {}'.format(path))
            if info.type == FileType.Directory:
                raise IsADirectoryError('Is a directory: {}'.format(path))
            return self._fs.open_input_stream(path.path)

    def open_output(self, path):
        with translate_errors(path):
            parent = path.parent
            if parent is not None:
                self._fs.create_dir(parent.path, recursive=True)
            return self._fs.open_output_stream(path.path)

    def get_file_status(self, path):
        with translate_errors(path):
            info = self._info(path)
        if info.type == FileType.NotFound:
            raise PathNotFound('No such file or directory: {}'.format(path))
        return HdfsFileStatus(info, path)

    def list_status(self, path):
        status = self.get_file_status(path)
        if not status.isdir():
            return [status]

        with translate_errors(path):
            infos = self._fs.get_file_info(
                FileSelector(path.path, recursive=False))
        statuses = [HdfsFileStatus(info, child_path(path, info.base_name))
                    for info in infos]
        return sorted(statuses, key=lambda s: s.path.name)

    def mkdirs(self, path, permission=None):
        with translate_errors(path):
            info = self._info(path)
            if info.type == FileType.File:
                raise AlreadyExists('File exists: {}'.format(path))

            created = []
            p = path
            while p is not None and \
                    self._info(p).type == FileType.NotFound:
                created.append(p)
                p = p.parent

            self._fs.create_dir(path.path, recursive=True)
            if permission is not None:
                for p in created:
                    self._chmod(p, permission)
        return True

    def _chmod(self, path, permission):
        # libhdfs through pyarrow.fs has no chmod
        uri = 'hdfs://{}{}'.format(self.authority or self.host, path.path)
        cmd = ['hdfs', 'dfs', '-chmod', '{:o}'.format(permission), uri]
        logger.debug('running %s', ' '.join(cmd))
        subprocess.run(cmd, stdout=subprocess.PIPE,
                       stderr=subprocess.PIPE).check_returncode()

    def rename(self, src, dst):
        with translate_errors(src):
            if self._info(src).type == FileType.NotFound:
                raise PathNotFound('No such file or directory: {}'.format(
                    src))
            target = dst
            if self._info(target).type == FileType.Directory:
                target = child_path(dst, src.name)
            if self._info(target).type != FileType.NotFound:
                raise AlreadyExists('Destination exists: {}'.format(target))

            self._fs.move(src.path, target.path)
        return True

    def delete(self, path, recursive=True):
        with translate_errors(path):
            info = self._info(path)
            if info.type == FileType.NotFound:
                return False

            if info.type == FileType.Directory:
                if not recursive and self._fs.get_file_info(
                        FileSelector(path.path, recursive=False)):
                    raise OSError('Directory not empty: {}'.format(path))
                self._fs.delete_dir(path.path)
            else:
                self._fs.delete_file(path.path)
        return True


register_filesystem('hdfs', Hdfs)
