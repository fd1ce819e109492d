import logging
from typing import Dict, Optional

import pyarrow

from .config import Configuration
from .path import make_path

logger = logging.getLogger(__name__)

# Filename suffix => pyarrow codec name
_EXTENSIONS = {
    '.gz': 'gzip',
    '.bz2': 'bz2',
    '.zst': 'zstd',
    '.lz4': 'lz4',
    '.br': 'brotli',
}


class Codec(object):
    '''Streaming compression codec backed by pyarrow

    Attributes:
        name (str): pyarrow codec name, e.g. ``gzip``.
        extension (str): filename suffix including the dot.
    '''

    def __init__(self, name: str, extension: str):
        self.name = name
        self.extension = extension

    def create_input_stream(self, stream):
        '''Wraps a readable binary stream with a decompressing stream'''
        return pyarrow.CompressedInputStream(stream, self.name)

    def create_output_stream(self, stream):
        '''Wraps a writable binary stream with a compressing stream

        Closing the returned stream finishes the compressed data and
        closes ``stream``.
        '''
        return pyarrow.CompressedOutputStream(stream, self.name)

    def __eq__(self, other):
        if isinstance(other, Codec):
            return (self.name, self.extension) == (other.name,
                                                   other.extension)
        return NotImplemented

    def __hash__(self):
        return hash((self.name, self.extension))

    def __repr__(self):
        return '<Codec name="{}" extension="{}">'.format(
            self.name, self.extension)


def register_codec(extension: str, name: str) -> None:
    '''Maps files ending with ``extension`` to the pyarrow codec ``name``'''
    if not extension.startswith('.'):
        extension = '.' + extension
    _EXTENSIONS[extension] = name


class CodecFactory(object):
    '''Picks a codec from a filename suffix

    Only codecs listed in ``io.compression.codecs`` and available in
    the installed pyarrow build are considered. When several suffixes
    match, the longest one wins.
    '''

    def __init__(self, config: Optional[Configuration] = None):
        if config is None:
            config = Configuration()
        enabled = set(config.get_list('io.compression.codecs'))

        self._codecs = {}  # type: Dict[str, Codec]
        for extension, name in _EXTENSIONS.items():
            if name not in enabled:
                continue
            if not pyarrow.Codec.is_available(name):
                logger.debug('codec %s is not available in pyarrow', name)
                continue
            self._codecs[extension] = Codec(name, extension)

    def get_codec(self, path) -> Optional[Codec]:
        name = make_path(path).name
        best = None
        for extension, codec in self._codecs.items():
            if name.endswith(extension):
                if best is None or len(extension) > len(best.extension):
                    best = codec
        return best


def compression_codec(path, config: Optional[Configuration] = None
                      ) -> Optional[Codec]:
    '''Returns the compression codec for ``path``, or ``None``'''
    return CodecFactory(config).get_codec(path)
