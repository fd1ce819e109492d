import bz2
import gzip
import io
import os
import struct
import tempfile
import unittest
import zlib
from unittest import mock

from parameterized import parameterized

import hdfsio
from hdfsio import FormatError, SequenceFileReader, SequenceFileWriter
from hdfsio.testing import SequenceFileForTest
from hdfsio.writable import IntWritable, LongWritable, RawWritable, Text

TEXT = 'org.apache.hadoop.io.Text'
SYNC = bytes(range(16))


def _header(key_class=TEXT, value_class=TEXT, compressed=False,
            block_compressed=False, codec=None, version=6, metadata=None):
    buf = io.BytesIO()
    buf.write(b'SEQ')
    buf.write(bytes([version]))
    Text(key_class).write(buf)
    Text(value_class).write(buf)
    buf.write(bytes([compressed, block_compressed]))
    if compressed and version >= 5:
        Text(codec).write(buf)
    if version >= 6:
        metadata = metadata or {}
        buf.write(struct.pack('>i', len(metadata)))
        for name, value in metadata.items():
            Text(name).write(buf)
            Text(value).write(buf)
    buf.write(SYNC)
    return buf.getvalue()


def _record(key, value):
    return struct.pack('>ii', len(key) + len(value), len(key)) + key + value


def _text(value):
    buf = io.BytesIO()
    Text(value).write(buf)
    return buf.getvalue()


class TestSequenceFileReader(unittest.TestCase):

    def setUp(self):
        self.testdir = tempfile.TemporaryDirectory()
        self.filename = os.path.join(self.testdir.name, 'test.seq')

    def tearDown(self):
        self.testdir.cleanup()

    def test_read(self):
        seq = SequenceFileForTest(self.filename,
                                  metadata={'created.by': 'test'})
        with SequenceFileReader(open(self.filename, 'rb')) as reader:
            self.assertEqual(6, reader.version)
            self.assertEqual(TEXT, reader.key_class)
            self.assertEqual(TEXT, reader.value_class)
            self.assertFalse(reader.compressed)
            self.assertFalse(reader.block_compressed)
            self.assertEqual({'created.by': 'test'}, reader.metadata)
            self.assertEqual(seq.sync, reader.sync)

            records = [(k.value, v.value) for k, v in reader]
        self.assertEqual(seq.records, records)

    def test_typed_records(self):
        records = [(i, i * 1000000000000) for i in range(5)]
        SequenceFileForTest(self.filename, records,
                            key_class=IntWritable, value_class=LongWritable)
        with SequenceFileReader(open(self.filename, 'rb')) as reader:
            got = list(reader)
        self.assertEqual(records, [(k.get(), v.get()) for k, v in got])
        self.assertIsInstance(got[0][0], IntWritable)
        self.assertIsInstance(got[0][1], LongWritable)
        self.assertIsNot(got[0][0], got[1][0])

    def test_empty(self):
        SequenceFileForTest(self.filename, records=[])
        reader = SequenceFileReader(open(self.filename, 'rb'))
        self.assertEqual([], list(reader))
        self.assertTrue(reader.closed)

    def test_next_record(self):
        SequenceFileForTest(self.filename)
        reader = SequenceFileReader(open(self.filename, 'rb'))
        key, value = Text(), Text()
        for i in range(3):
            self.assertTrue(reader.next_record(key, value))
            self.assertEqual('key{}'.format(i), key.value)
            self.assertEqual('value{}'.format(i), value.value)
        self.assertFalse(reader.next_record(key, value))
        self.assertTrue(reader.closed)
        self.assertFalse(reader.next_record(key, value))

    def test_sync_markers(self):
        records = [('key{}'.format(i), 'value{}'.format(i))
                   for i in range(1000)]
        seq = SequenceFileForTest(self.filename, records)
        with open(self.filename, 'rb') as f:
            data = f.read()
        self.assertGreater(data.count(struct.pack('>i', -1) + seq.sync), 1)

        with SequenceFileReader(open(self.filename, 'rb')) as reader:
            self.assertEqual(records, [(k.value, v.value) for k, v in reader])

    @parameterized.expand([
        ('org.apache.hadoop.io.compress.DefaultCodec', zlib.compress),
        ('org.apache.hadoop.io.compress.GzipCodec', gzip.compress),
        ('org.apache.hadoop.io.compress.BZip2Codec', bz2.compress),
    ])
    def test_record_compressed(self, codec, compress):
        data = _header(compressed=True, codec=codec)
        data += _record(_text('k'), compress(_text('compressed value')))
        reader = SequenceFileReader(io.BytesIO(data))
        self.assertTrue(reader.compressed)
        self.assertEqual(codec, reader.codec_class)
        self.assertEqual([('k', 'compressed value')],
                         [(k.value, v.value) for k, v in reader])

    def test_version4(self):
        data = _header(compressed=True, version=4)
        data += _record(_text('k'), zlib.compress(_text('v')))
        reader = SequenceFileReader(io.BytesIO(data))
        self.assertEqual(4, reader.version)
        self.assertEqual('org.apache.hadoop.io.compress.DefaultCodec',
                         reader.codec_class)
        self.assertEqual({}, reader.metadata)
        self.assertEqual([('k', 'v')], [(k.value, v.value) for k, v in reader])

    def test_corrupt_compressed_value(self):
        data = _header(compressed=True,
                       codec='org.apache.hadoop.io.compress.DefaultCodec')
        data += _record(_text('k'), b'not zlib')
        with self.assertRaises(FormatError):
            list(SequenceFileReader(io.BytesIO(data)))

    @parameterized.expand([
        ('bad_magic', b'PAR1' + b'\x00' * 32),
        ('empty', b''),
        ('old_version', b'SEQ\x03' + _header()[4:]),
        ('new_version', b'SEQ\x07' + _header()[4:]),
        ('block_compressed', _header(
            compressed=True, block_compressed=True,
            codec='org.apache.hadoop.io.compress.DefaultCodec')),
        ('unknown_codec', _header(
            compressed=True,
            codec='org.apache.hadoop.io.compress.SnappyCodec')),
        ('truncated_header', _header()[:-4]),
    ])
    def test_invalid_header(self, _, data):
        stream = io.BytesIO(data)
        with self.assertRaises(FormatError):
            SequenceFileReader(stream)
        self.assertTrue(stream.closed)

    @parameterized.expand([
        ('truncated_record', _record(_text('key'), _text('value'))[:-2]),
        ('truncated_length', b'\x00\x00'),
        ('sync_mismatch', struct.pack('>i', -1) + b'x' * 16),
        ('negative_key_length', struct.pack('>ii', 4, -1) + b'abcd'),
        ('key_longer_than_record', struct.pack('>ii', 2, 4) + b'abcd'),
        ('trailing_bytes', _record(_text('key') + b'?', _text('value'))),
    ])
    def test_invalid_record(self, _, records):
        reader = SequenceFileReader(io.BytesIO(_header() + records))
        with self.assertRaises(FormatError):
            list(reader)

    def test_sync_escape(self):
        data = _header()
        data += struct.pack('>i', -1) + SYNC
        data += _record(_text('k'), _text('v'))
        reader = SequenceFileReader(io.BytesIO(data))
        self.assertEqual([('k', 'v')], [(k.value, v.value) for k, v in reader])

    def test_unknown_value_class(self):
        data = _header(value_class='com.example.Custom')
        data += _record(_text('k'), b'\x01\x02\x03')
        reader = SequenceFileReader(io.BytesIO(data))
        (key, value), = list(reader)
        self.assertIsInstance(value, RawWritable)
        self.assertEqual('com.example.Custom', value.java_class)
        self.assertEqual(b'\x01\x02\x03', value.value)


class TestSequenceFileWriter(unittest.TestCase):

    def test_header(self):
        buf = io.BytesIO()
        writer = SequenceFileWriter(buf, Text, IntWritable,
                                    metadata={'a': 'b'})
        writer.append('k', 1)
        data = buf.getvalue()
        writer.close()
        self.assertTrue(buf.closed)

        self.assertTrue(data.startswith(b'SEQ\x06'))
        reader = SequenceFileReader(io.BytesIO(data))
        self.assertEqual('org.apache.hadoop.io.IntWritable',
                         reader.value_class)
        self.assertEqual({'a': 'b'}, reader.metadata)
        self.assertEqual(writer.sync, reader.sync)
        self.assertEqual([('k', 1)], [(k.get(), v.get()) for k, v in reader])

    def test_wrong_class(self):
        writer = SequenceFileWriter(io.BytesIO(), Text, Text)
        with self.assertRaises(TypeError):
            writer.append(IntWritable(1), 'value')
        with self.assertRaises(TypeError):
            writer.append('key', IntWritable(1))

    def test_raw_writable(self):
        buf = io.BytesIO()
        with SequenceFileWriter(buf, Text, 'com.example.Custom') as writer:
            writer.append('k', RawWritable(b'\x01\x02',
                                           java_class='com.example.Custom'))
            with self.assertRaises(TypeError):
                writer.append('k', b'\x01\x02')
            data = buf.getvalue()

        (key, value), = list(SequenceFileReader(io.BytesIO(data)))
        self.assertEqual('com.example.Custom', value.java_class)
        self.assertEqual(b'\x01\x02', value.value)


class TestSequenceFileSeq(unittest.TestCase):

    def setUp(self):
        self.testdir = tempfile.TemporaryDirectory()
        self.filename = os.path.join(self.testdir.name, 'part-00000')

    def tearDown(self):
        self.testdir.cleanup()

    def _spy_readers(self):
        readers = []
        reader_class = hdfsio.SequenceFileReader

        def spy(stream):
            reader = reader_class(stream)
            readers.append(reader)
            return reader

        return readers, mock.patch('hdfsio.SequenceFileReader',
                                   side_effect=spy)

    def test_records(self):
        SequenceFileForTest(self.filename, [('a', 1), ('b', 2)],
                            value_class=IntWritable)
        records = list(hdfsio.sequence_file_seq(self.filename))
        self.assertEqual([('a', 1), ('b', 2)],
                         [(k.value, v.value) for k, v in records])
        self.assertIsNot(records[0][0], records[1][0])

    def test_empty_file_is_closed(self):
        SequenceFileForTest(self.filename, records=[])
        readers, patch = self._spy_readers()
        with patch:
            self.assertEqual([], list(hdfsio.sequence_file_seq(
                self.filename)))
        self.assertEqual(1, len(readers))
        self.assertTrue(readers[0].closed)

    def test_abandoned_iteration_is_closed(self):
        SequenceFileForTest(self.filename)
        readers, patch = self._spy_readers()
        with patch:
            records = hdfsio.sequence_file_seq(self.filename)
            key, value = next(records)
            self.assertEqual('key0', key.value)
            self.assertFalse(readers[0].closed)
            records.close()
        self.assertTrue(readers[0].closed)

    def test_not_a_sequence_file(self):
        hdfsio.write_lines(self.filename, ['hello'])
        with self.assertRaises(FormatError):
            list(hdfsio.sequence_file_seq(self.filename))

    def test_missing(self):
        with self.assertRaises(hdfsio.PathNotFound):
            list(hdfsio.sequence_file_seq(
                os.path.join(self.testdir.name, 'missing')))
