import random
import string

from hdfsio.sequencefile import SequenceFileWriter
from hdfsio.writable import Text


class SequenceFileForTest:
    '''Writes a SequenceFile holding ``records`` to ``destfile``

    ``records`` is a list of ``(key, value)`` tuples of plain Python
    values or Writables; both default to :class:`Text`.
    '''

    def __init__(self, destfile, records=None, key_class=Text,
                 value_class=Text, metadata=None):
        if records is None:
            self.records = [('key{}'.format(i), 'value{}'.format(i))
                            for i in range(3)]
        else:
            self.records = records

        self.destfile = destfile
        with SequenceFileWriter(open(destfile, 'wb'), key_class,
                                value_class, metadata=metadata) as writer:
            for key, value in self.records:
                writer.append(key, value)
            self.sync = writer.sync


def randstring(length=16):
    letters = string.ascii_letters + string.digits
    return (''.join(random.choice(letters) for _ in range(length)))
