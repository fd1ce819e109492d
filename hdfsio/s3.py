import contextlib
import io
import logging
import os

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import AlreadyExists, PathNotFound, PermissionDenied
from .fs import FileStatus, FileSystem, child_path, register_filesystem

logger = logging.getLogger(__name__)

DEFAULT_MAX_BUFFER_SIZE = 16 * 1024 * 1024
DEFAULT_MPU_CHUNKSIZE = 32 * 1024 * 1024

_NOT_FOUND = ('404', 'NoSuchKey', 'NotFound')
_FORBIDDEN = ('403', 'AccessDenied', 'Forbidden')


@contextlib.contextmanager
def _translate_client_errors(path):
    try:
        yield
    except ClientError as e:
        code = e.response.get('Error', {}).get('Code')
        if code in _NOT_FOUND:
            raise PathNotFound('No such S3 object: {}'.format(path)) from e
        elif code in _FORBIDDEN:
            raise PermissionDenied('Access denied: {}'.format(path)) from e
        raise


def _key(path) -> str:
    return path.path.lstrip('/').rstrip('/')


class S3ObjectStatus(FileStatus):
    def __init__(self, path, size, last_modified, metadata=None):
        self.path = path
        self.length = size
        self.mode = 0o100644
        self.modification_time = last_modified.timestamp()
        self.metadata = metadata or {}


class S3PrefixStatus(FileStatus):
    def __init__(self, path):
        self.path = path
        self.length = 0
        self.mode = 0o40755
        self.modification_time = 0


class _ObjectReader(io.RawIOBase):
    def __init__(self, client, bucket, key):
        super().__init__()

        self.client = client
        self.bucket = bucket
        self.key = key

        res = self.client.head_object(Bucket=bucket, Key=key)
        self.content_length = res['ContentLength']
        self.pos = 0

    def readable(self):
        return True

    def seekable(self):
        return True

    def tell(self):
        return self.pos

    def seek(self, pos, whence=io.SEEK_SET):
        if whence == io.SEEK_CUR:
            pos += self.pos
        elif whence == io.SEEK_END:
            pos += self.content_length
        elif whence != io.SEEK_SET:
            raise ValueError('Wrong whence value: {}'.format(whence))

        if pos < 0:
            raise OSError(22, "[Errno 22] Invalid argument")
        self.pos = pos
        return self.pos

    def readinto(self, b):
        if self.pos >= self.content_length:
            return 0

        size = min(len(b), self.content_length - self.pos)
        r = 'bytes={}-{}'.format(self.pos, self.pos + size - 1)
        res = self.client.get_object(Bucket=self.bucket, Key=self.key,
                                     Range=r)
        data = res['Body'].read()

        b[:len(data)] = data
        self.pos += len(data)
        return len(data)


class _ObjectWriter(io.RawIOBase):
    def __init__(self, client, bucket, key, mpu_chunksize):
        super().__init__()

        self.client = client
        self.bucket = bucket
        self.key = key
        self.mpu_chunksize = mpu_chunksize
        self.mpu_id = None
        self.parts = []
        self.buf = io.BytesIO()

    def writable(self):
        return True

    def write(self, data):
        written = self.buf.write(data)
        if self.buf.tell() >= self.mpu_chunksize:
            self._send_part()
        return written

    def _send_part(self):
        c = self.client
        if self.mpu_id is None:
            res = c.create_multipart_upload(Bucket=self.bucket, Key=self.key)
            self.mpu_id = res['UploadId']

        num = len(self.parts) + 1
        res = c.upload_part(Body=self.buf.getvalue(), Bucket=self.bucket,
                            Key=self.key, PartNumber=num,
                            UploadId=self.mpu_id)
        self.parts.append({'ETag': res['ETag'], 'PartNumber': num})
        self.buf = io.BytesIO()

    def close(self):
        if self.closed:
            return
        try:
            if self.mpu_id is None:
                self.client.put_object(Body=self.buf.getvalue(),
                                       Bucket=self.bucket, Key=self.key)
            else:
                if self.buf.tell() > 0:
                    self._send_part()
                self.client.complete_multipart_upload(
                    Bucket=self.bucket, Key=self.key, UploadId=self.mpu_id,
                    MultipartUpload={'Parts': self.parts})
        finally:
            super().close()


class S3(FileSystem):
    '''S3 object store wrapper

    The authority of an ``s3://bucket/key`` path names the bucket.
    Although there is no concept of directory in AWS S3 API, common
    prefixes show up as directories, and :meth:`mkdirs` leaves an
    empty ``key/`` marker object so that empty directories exist.

    Credentials and endpoint are taken from ``fs.s3a.access.key``,
    ``fs.s3a.secret.key`` and ``fs.s3a.endpoint``. An unset endpoint
    falls back to ``$S3_ENDPOINT``, then to boto3's default; unset
    credentials go to boto3's own lookup.
    '''

    def __init__(self, authority=None, config=None, **_):
        super().__init__(authority, config)
        if not authority:
            raise ValueError('S3 path needs a bucket name')
        self.bucket = authority

        kwargs = {}
        access_key = self.config.get('fs.s3a.access.key')
        if access_key:
            kwargs['aws_access_key_id'] = access_key
        secret_key = self.config.get('fs.s3a.secret.key')
        if secret_key:
            kwargs['aws_secret_access_key'] = secret_key

        self.endpoint = self.config.get('fs.s3a.endpoint') or \
            os.getenv('S3_ENDPOINT')
        if self.endpoint:
            kwargs['endpoint_url'] = self.endpoint

        self.kwargs = kwargs
        self.mpu_chunksize = self.config.get_int('fs.s3a.multipart.size',
                                                 DEFAULT_MPU_CHUNKSIZE)
        self._connect()

    def _connect(self):
        try:
            self.client = boto3.client('s3', **self.kwargs)
            self.client.head_bucket(Bucket=self.bucket)
        except (BotoCoreError, ClientError) as e:
            raise RuntimeError('Bucket {} is not available: {}'.format(
                self.bucket, e)) from e

    def open_input(self, path):
        with _translate_client_errors(path):
            obj = _ObjectReader(self.client, self.bucket, _key(path))

        bs = min(obj.content_length, DEFAULT_MAX_BUFFER_SIZE)
        return io.BufferedReader(obj, buffer_size=bs or io.DEFAULT_BUFFER_SIZE)

    def open_output(self, path):
        obj = _ObjectWriter(self.client, self.bucket, _key(path),
                            self.mpu_chunksize)
        return io.BufferedWriter(obj)

    def get_file_status(self, path):
        key = _key(path)
        if not key:
            return S3PrefixStatus(path)

        try:
            with _translate_client_errors(path):
                res = self.client.head_object(Bucket=self.bucket, Key=key)
            return S3ObjectStatus(path, res['ContentLength'],
                                  res['LastModified'], res.get('Metadata'))
        except PathNotFound:
            if self._is_prefix(key):
                return S3PrefixStatus(path)
            raise

    def _is_prefix(self, key):
        res = self.client.list_objects_v2(Bucket=self.bucket,
                                          Prefix=key + '/', MaxKeys=1)
        return bool(res.get('Contents') or res.get('CommonPrefixes'))

    def _list_objects(self, prefix, delimiter=None):
        paginator = self.client.get_paginator('list_objects_v2')
        paging_args = {'Bucket': self.bucket, 'Prefix': prefix,
                       'PaginationConfig': {'PageSize': 1000}}
        if delimiter is not None:
            paging_args['Delimiter'] = delimiter
        yield from paginator.paginate(**paging_args)

    def _object_keys(self, prefix):
        for res in self._list_objects(prefix):
            for content in res.get('Contents', []):
                yield content['Key']

    def list_status(self, path):
        status = self.get_file_status(path)
        if not status.isdir():
            return [status]

        key = _key(path)
        prefix = key + '/' if key else ''
        statuses = []
        with _translate_client_errors(path):
            for res in self._list_objects(prefix, delimiter='/'):
                for common_prefix in res.get('CommonPrefixes', []):
                    name = common_prefix['Prefix'][len(prefix):].rstrip('/')
                    statuses.append(S3PrefixStatus(child_path(path, name)))
                for content in res.get('Contents', []):
                    if content['Key'] == prefix:
                        # directory marker
                        continue
                    name = content['Key'][len(prefix):]
                    statuses.append(S3ObjectStatus(
                        child_path(path, name), content['Size'],
                        content['LastModified']))
        return sorted(statuses, key=lambda s: s.path.name)

    def mkdirs(self, path, permission=None):
        '''Leaves a directory marker

        ``permission`` is ignored; S3 has no POSIX permissions.
        '''
        key = _key(path)
        if not key:
            return True
        if self.is_file(path):
            raise AlreadyExists('File exists: {}'.format(path))
        with _translate_client_errors(path):
            self.client.put_object(Bucket=self.bucket, Key=key + '/',
                                   Body=b'')
        return True

    def rename(self, src, dst):
        '''Copies & removes the objects

        Directories are renamed object by object, so the rename is not
        atomic.
        '''
        status = self.get_file_status(src)
        target = dst
        if self.is_directory(dst):
            target = child_path(dst, src.name)
        if self.exists(target):
            raise AlreadyExists('Destination exists: {}'.format(target))

        src_key = _key(src)
        dst_key = _key(target)
        if status.isdir():
            moves = [(k, dst_key + k[len(src_key):])
                     for k in self._object_keys(src_key + '/')]
        else:
            moves = [(src_key, dst_key)]

        with _translate_client_errors(src):
            for s, d in moves:
                logger.debug('copy s3://%s/%s to %s', self.bucket, s, d)
                self.client.copy_object(
                    Bucket=self.bucket, Key=d,
                    CopySource={'Bucket': self.bucket, 'Key': s})
            self._delete_keys([s for s, _ in moves])
        return True

    def _delete_keys(self, keys):
        for i in range(0, len(keys), 1000):
            objects = [{'Key': k} for k in keys[i:i + 1000]]
            self.client.delete_objects(Bucket=self.bucket,
                                       Delete={'Objects': objects})

    def delete(self, path, recursive=True):
        try:
            status = self.get_file_status(path)
        except PathNotFound:
            return False

        key = _key(path)
        with _translate_client_errors(path):
            if not status.isdir():
                self.client.delete_object(Bucket=self.bucket, Key=key)
                return True

            prefix = key + '/' if key else ''
            keys = list(self._object_keys(prefix))
            if not recursive and [k for k in keys if k != prefix]:
                raise OSError('Directory not empty: {}'.format(path))
            self._delete_keys(keys)
        return True


register_filesystem('s3', S3)
register_filesystem('s3a', S3)
