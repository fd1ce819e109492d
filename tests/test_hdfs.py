import datetime
import getpass
import os
import shutil
import tempfile
import unittest
from unittest import mock

from pyarrow.fs import FileInfo, FileType

import hdfsio
from hdfsio import (AlreadyExists, Configuration, FilesystemUnavailable, Hdfs,
                    HdfsFileStatus, Path, PathNotFound, make_path)
from hdfsio.hdfs import (_get_principal_name, _namenode,
                         _nameservice_from_site_xml,
                         _parse_principal_name_from_keytab,
                         _parse_principal_name_from_klist)
from hdfsio.testing import randstring

SITE_XML = '''<?xml version="1.0"?>
<configuration>
  <property>
    <name>dfs.nameservices</name>
    <value>{}</value>
  </property>
</configuration>
'''


class TestPrincipalName(unittest.TestCase):

    def test_parse_principal_name_from_klist(self):
        username = 'fake_user!\"#$%&\'()*+,-./:;<=>?[\\]^ _`{|}~'
        service = 'fake_service!\"#$%&\'()*+,-./:;<=>?[\\]^ _`{|}~'
        correct_out = 'Ticket cache: FILE:/tmp/krb5cc_sample\n' \
            'Default principal: {}@{}\n\n' \
            'Valid starting     Expires            Service principal\n' \
            '01/01/20 00:00:00  01/02/20 00:00:00  krbtgt/{}@{}\n'.format(
                username, service, service, service)
        self.assertEqual(username,
                         _parse_principal_name_from_klist(correct_out))

        self.assertIsNone(_parse_principal_name_from_klist(''))
        self.assertIsNone(_parse_principal_name_from_klist(
            'klist: No credentials cache found\n\n'))

    def test_parse_principal_name_from_keytab(self):
        username = 'fake_user1'
        service = 'fake_service'
        correct_out = 'Keytab name: FILE:user.keytab\n' \
            'KVNO Principal\n' \
            '---- ----------------------------------------------\n' \
            '   1 {}@{}\n'.format(username, service)
        self.assertEqual(username,
                         _parse_principal_name_from_keytab(correct_out))

        self.assertIsNone(_parse_principal_name_from_keytab(
            'Keytab name: FILE:user.keytab\n'))

    def test_get_principal_name_fallback(self):
        with mock.patch('hdfsio.hdfs._run_klist', return_value=None):
            self.assertEqual(getpass.getuser(), _get_principal_name())

    def test_get_principal_name_from_cache(self):
        out = b'Ticket cache: FILE:/tmp/krb5cc_0\n' \
            b'Default principal: alice@EXAMPLE.COM\n'
        with mock.patch('hdfsio.hdfs._run_klist', return_value=out):
            self.assertEqual('alice', _get_principal_name())


class TestNamenode(unittest.TestCase):

    def setUp(self):
        self.confdir = tempfile.TemporaryDirectory()
        self.env = mock.patch.dict(
            os.environ, {'HADOOP_CONF_DIR': self.confdir.name})
        self.env.start()

    def tearDown(self):
        self.env.stop()
        self.confdir.cleanup()

    def _write_site_xml(self, nameservices):
        with open(os.path.join(self.confdir.name, 'hdfs-site.xml'),
                  'w') as f:
            f.write(SITE_XML.format(nameservices))

    def test_authority(self):
        config = Configuration()
        self.assertEqual(('nn', 8020), _namenode('nn:8020', config))
        self.assertEqual(('nameservice1', 0),
                         _namenode('nameservice1', config))

    def test_default_fs(self):
        config = Configuration({'fs.defaultFS': 'hdfs://nn:9000'})
        self.assertEqual(('nn', 9000), _namenode(None, config))

    def test_site_xml(self):
        self._write_site_xml('ns1,ns2')
        self.assertEqual('ns1', _nameservice_from_site_xml())
        self.assertEqual(('ns1', 0), _namenode(None, Configuration()))

    def test_no_namenode(self):
        self.assertIsNone(_nameservice_from_site_xml())
        with self.assertRaises(RuntimeError):
            _namenode(None, Configuration())


class TestHdfsConnection(unittest.TestCase):

    def setUp(self):
        patcher = mock.patch('hdfsio.hdfs._prepare_environment')
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_connection_options(self):
        config = Configuration({
            'hadoop.user': 'alice',
            'dfs.replication': '2',
            'dfs.client.use.datanode.hostname': 'true',
            'io.file.buffer.size': '4096',
        })
        with mock.patch('hdfsio.hdfs.HadoopFileSystem') as cls, \
                mock.patch.dict(os.environ, {'KRB5CCNAME': '/tmp/krb5cc'}):
            fs = hdfsio.filesystem('hdfs://nn:8020/user/alice', config)

        self.assertIsInstance(fs, Hdfs)
        self.assertEqual('nn:8020', fs.authority)
        self.assertEqual('alice', fs.username)
        cls.assert_called_once_with(
            'nn', 8020, user='alice',
            extra_conf={'dfs.client.use.datanode.hostname': 'true'},
            buffer_size=4096, replication=2, kerb_ticket='/tmp/krb5cc')

    def test_connection_error(self):
        config = Configuration({'hadoop.user': 'alice'})
        with mock.patch('hdfsio.hdfs.HadoopFileSystem',
                        side_effect=OSError('connection refused')):
            with self.assertRaises(FilesystemUnavailable):
                hdfsio.filesystem('hdfs://nn:8020/', config)

    def test_file_status(self):
        mtime = datetime.datetime(2020, 1, 1, tzinfo=datetime.timezone.utc)
        info = FileInfo('/user/alice/f', FileType.File, size=5, mtime=mtime)
        status = HdfsFileStatus(info, Path('hdfs://nn/user/alice/f'))
        self.assertTrue(status.isfile())
        self.assertFalse(status.isdir())
        self.assertEqual(5, status.length)
        self.assertEqual(mtime.timestamp(), status.modification_time)

        info = FileInfo('/user/alice', FileType.Directory)
        status = HdfsFileStatus(info, Path('hdfs://nn/user/alice'))
        self.assertTrue(status.isdir())
        self.assertEqual(0, status.length)


@unittest.skipIf(shutil.which('hdfs') is None, "HDFS client not installed")
class TestHdfs(unittest.TestCase):

    def setUp(self):
        self.config = Configuration({'fs.defaultFS': 'hdfs:///'})
        self.dirname = make_path(randstring())
        hdfsio.make_directory(self.dirname, config=self.config)

    def tearDown(self):
        hdfsio.delete(self.dirname, config=self.config)

    def test_filesystem(self):
        with hdfsio.filesystem(self.dirname, self.config) as fs:
            self.assertIsInstance(fs, Hdfs)
            repr(fs)

    def test_lines(self):
        for name in ('lines.txt', 'lines.gz'):
            path = self.dirname / name
            hdfsio.write_lines(path, ['a', 'b'], config=self.config)
            self.assertEqual(['a', 'b'], list(
                hdfsio.read_lines(path, config=self.config)))

    def test_status(self):
        path = self.dirname / 'file'
        with hdfsio.output_stream(path, config=self.config) as out:
            out.write(b'12345')

        self.assertTrue(hdfsio.is_file(path, config=self.config))
        self.assertTrue(hdfsio.is_directory(self.dirname,
                                            config=self.config))
        self.assertEqual(5, hdfsio.file_size(path, config=self.config))
        self.assertIsNone(hdfsio.file_status(self.dirname / 'missing',
                                             config=self.config))
        with self.assertRaises(PathNotFound):
            hdfsio.input_stream(self.dirname / 'missing', config=self.config)

    def test_list_status(self):
        for name in ('b', 'a', 'sub/c'):
            hdfsio.write_lines(self.dirname / name, ['x'], config=self.config)

        statuses = hdfsio.list_status(self.dirname, config=self.config)
        self.assertEqual(['a', 'b', 'sub'], [s.path.name for s in statuses])
        statuses = hdfsio.list_status(self.dirname, recursive=True,
                                      config=self.config)
        self.assertEqual(['a', 'b', 'c'], [s.path.name for s in statuses])

    def test_mkdirs(self):
        path = self.dirname / 'x/y'
        self.assertTrue(hdfsio.make_directory(path, config=self.config))
        self.assertTrue(hdfsio.make_directory(path, config=self.config))

        hdfsio.write_lines(self.dirname / 'file', [], config=self.config)
        with self.assertRaises(AlreadyExists):
            hdfsio.make_directory(self.dirname / 'file', config=self.config)

    def test_rename_delete(self):
        src = self.dirname / 'src'
        dst = self.dirname / 'dst'
        hdfsio.write_lines(src, ['src'], config=self.config)
        hdfsio.write_lines(dst, ['dst'], config=self.config)

        with self.assertRaises(AlreadyExists):
            hdfsio.rename(src, dst, config=self.config)
        self.assertTrue(hdfsio.rename(src, dst, overwrite=True,
                                      config=self.config))
        self.assertEqual(['src'], list(
            hdfsio.read_lines(dst, config=self.config)))

        self.assertTrue(hdfsio.delete(dst, config=self.config))
        self.assertFalse(hdfsio.delete(dst, config=self.config))
