'''Hadoop Writable serialization for the common ``org.apache.hadoop.io`` types

Only the wire format is implemented: every type reads and writes
itself big-endian, exactly like its Java counterpart, so that
SequenceFile records can be exchanged with Hadoop.
'''
import struct
from typing import Dict, Type

from .errors import FormatError

_REGISTRY = {}  # type: Dict[str, Type[Writable]]


def read_exact(stream, size: int) -> bytes:
    data = stream.read(size)
    if data is None or len(data) < size:
        raise FormatError('Unexpected end of data: wanted {} bytes'.format(
            size))
    return data


def _decode_vint_size(first: int) -> int:
    if first >= -112:
        return 1
    elif first < -120:
        return -119 - first
    return -111 - first


def _is_negative_vint(first: int) -> bool:
    return first < -120 or -112 <= first < 0


def read_vlong(stream) -> int:
    '''Reads a zero-compressed variable-length integer

    Values in [-112, 127] take one byte. Larger ones take a length
    byte followed by up to 8 big-endian bytes of the value (of its
    one's complement when negative).
    '''
    first = struct.unpack('>b', read_exact(stream, 1))[0]
    size = _decode_vint_size(first)
    if size == 1:
        return first

    value = 0
    for b in read_exact(stream, size - 1):
        value = (value << 8) | b
    if _is_negative_vint(first):
        return value ^ -1
    return value


def write_vlong(stream, value: int) -> None:
    if -112 <= value <= 127:
        stream.write(struct.pack('>b', value))
        return

    length = -112
    if value < 0:
        value ^= -1
        length = -120

    tmp = value
    while tmp != 0:
        tmp >>= 8
        length -= 1
    stream.write(struct.pack('>b', length))

    if length < -120:
        length = -(length + 120)
    else:
        length = -(length + 112)
    for idx in range(length, 0, -1):
        shift = (idx - 1) * 8
        stream.write(bytes([(value >> shift) & 0xFF]))


def register_writable(cls):
    '''Class decorator registering a Writable under its Java class name'''
    _REGISTRY[cls.java_class] = cls
    return cls


def writable_class(java_class: str):
    '''Returns the registered Writable class, or ``None``'''
    return _REGISTRY.get(java_class)


def new_instance(java_class: str) -> 'Writable':
    '''Creates an empty Writable for ``java_class``

    Unknown classes get a :class:`RawWritable` keeping the serialized
    bytes as they are.
    '''
    cls = _REGISTRY.get(java_class)
    if cls is None:
        return RawWritable(java_class=java_class)
    return cls()


class Writable(object):
    '''Base of all serializable types

    Attributes:
        value: The Python value held by the writable.
    '''
    java_class = None

    def __init__(self, value=None):
        self.value = value

    def read_fields(self, stream) -> None:
        raise NotImplementedError()

    def write(self, stream) -> None:
        raise NotImplementedError()

    def get(self):
        return self.value

    def set(self, value) -> None:
        self.value = value

    def __eq__(self, other):
        if isinstance(other, Writable):
            return (self.java_class == other.java_class
                    and self.value == other.value)
        return NotImplemented

    def __hash__(self):
        return hash((self.java_class, self.value))

    def __str__(self):
        return str(self.value)

    def __repr__(self):
        return '{}({!r})'.format(type(self).__name__, self.value)


class _StructWritable(Writable):
    fmt = None

    def read_fields(self, stream):
        size = struct.calcsize(self.fmt)
        self.value = struct.unpack(self.fmt, read_exact(stream, size))[0]

    def write(self, stream):
        stream.write(struct.pack(self.fmt, self.value))


@register_writable
class Text(Writable):
    java_class = 'org.apache.hadoop.io.Text'

    def __init__(self, value=''):
        super().__init__(value)

    def read_fields(self, stream):
        size = read_vlong(stream)
        try:
            self.value = read_exact(stream, size).decode('utf-8')
        except UnicodeDecodeError as e:
            raise FormatError('Malformed Text: {}'.format(e)) from e

    def write(self, stream):
        data = self.value.encode('utf-8')
        write_vlong(stream, len(data))
        stream.write(data)


@register_writable
class BytesWritable(Writable):
    java_class = 'org.apache.hadoop.io.BytesWritable'

    def __init__(self, value=b''):
        super().__init__(value)

    def read_fields(self, stream):
        size = struct.unpack('>i', read_exact(stream, 4))[0]
        if size < 0:
            raise FormatError('Negative BytesWritable size: {}'.format(size))
        self.value = read_exact(stream, size)

    def write(self, stream):
        stream.write(struct.pack('>i', len(self.value)))
        stream.write(self.value)


@register_writable
class IntWritable(_StructWritable):
    java_class = 'org.apache.hadoop.io.IntWritable'
    fmt = '>i'

    def __init__(self, value=0):
        super().__init__(value)


@register_writable
class LongWritable(_StructWritable):
    java_class = 'org.apache.hadoop.io.LongWritable'
    fmt = '>q'

    def __init__(self, value=0):
        super().__init__(value)


@register_writable
class FloatWritable(_StructWritable):
    java_class = 'org.apache.hadoop.io.FloatWritable'
    fmt = '>f'

    def __init__(self, value=0.0):
        super().__init__(value)


@register_writable
class DoubleWritable(_StructWritable):
    java_class = 'org.apache.hadoop.io.DoubleWritable'
    fmt = '>d'

    def __init__(self, value=0.0):
        super().__init__(value)


@register_writable
class BooleanWritable(_StructWritable):
    java_class = 'org.apache.hadoop.io.BooleanWritable'
    fmt = '>?'

    def __init__(self, value=False):
        super().__init__(value)


@register_writable
class VIntWritable(Writable):
    java_class = 'org.apache.hadoop.io.VIntWritable'

    def __init__(self, value=0):
        super().__init__(value)

    def read_fields(self, stream):
        self.value = read_vlong(stream)

    def write(self, stream):
        write_vlong(stream, self.value)


@register_writable
class VLongWritable(VIntWritable):
    java_class = 'org.apache.hadoop.io.VLongWritable'


@register_writable
class NullWritable(Writable):
    java_class = 'org.apache.hadoop.io.NullWritable'

    def read_fields(self, stream):
        pass

    def write(self, stream):
        pass


class RawWritable(Writable):
    '''Serialized bytes of a type without Python counterpart

    ``read_fields`` consumes the whole stream, so it must be given a
    stream holding exactly one serialized value.
    '''

    def __init__(self, value=b'', java_class=None):
        super().__init__(value)
        self.java_class = java_class

    def read_fields(self, stream):
        self.value = stream.read()

    def write(self, stream):
        stream.write(self.value)
