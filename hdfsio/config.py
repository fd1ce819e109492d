import configparser
import os
from collections.abc import Mapping
from typing import Dict, Iterator, List, Optional

SECTION = 'hdfsio'

DEFAULTS = {
    'fs.defaultFS': 'file:///',
    'io.file.buffer.size': '65536',
    'io.compression.codecs': 'gzip,bz2,zstd,lz4,brotli',
    # 0 means "use the server side default"
    'dfs.replication': '0',
    'dfs.blocksize': '0',
    'hadoop.user': '',
    'fs.s3a.endpoint': '',
    'fs.s3a.access.key': '',
    'fs.s3a.secret.key': '',
}


def _default_config_file():
    path = os.getenv('HDFSIO_CONFIG_PATH')
    if path:
        return path

    basedir = os.getenv('XDG_CONFIG_HOME')
    if not basedir:
        basedir = os.path.join(os.path.expanduser('~'), ".config")

    return os.path.join(basedir, "hdfsio.ini")


class Configuration(Mapping):
    '''Immutable set of Hadoop-style options

    Values are strings keyed by dotted names such as
    ``fs.defaultFS`` or ``io.file.buffer.size``, layered over
    :data:`DEFAULTS`. A configuration never changes after
    construction; ``with_values`` and ``with_custom_scheme`` return
    new objects.

    Every operation in :mod:`hdfsio` accepts an optional ``config``
    keyword. When it is omitted, ``Configuration()`` is used.
    '''

    def __init__(self, values: Optional[Dict[str, str]] = None,
                 custom_schemes: Optional[Dict[str, Dict[str, str]]] = None):
        data = dict(DEFAULTS)
        if values:
            data.update((k, str(v)) for k, v in values.items())
        self._data = data

        self._custom_schemes = {}
        for name, scheme_data in (custom_schemes or {}).items():
            self._custom_schemes[name] = dict(scheme_data)

    @classmethod
    def from_file(cls, path: Optional[str] = None) -> 'Configuration':
        '''Loads a configuration from an INI file

        Keys of the ``[hdfsio]`` section become configuration values;
        every other section defines a custom scheme (see
        :meth:`with_custom_scheme`). A missing file yields the
        defaults. The default location is ``$HDFSIO_CONFIG_PATH``, or
        ``hdfsio.ini`` under ``$XDG_CONFIG_HOME`` (``~/.config``).
        '''
        if path is None:
            path = _default_config_file()

        parser = configparser.ConfigParser(interpolation=None)
        # Keep dotted keys like fs.defaultFS case-sensitive
        parser.optionxform = str
        parser.read(path)

        values = {}
        schemes = {}
        for name in parser.sections():
            if name == SECTION:
                values.update(parser[name])
            else:
                schemes[name] = dict(parser[name])
        return cls(values, schemes)

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self):
        overrides = {k: v for k, v in self._data.items()
                     if DEFAULTS.get(k) != v}
        return '{}({!r})'.format(type(self).__name__, overrides)

    def __eq__(self, other):
        if isinstance(other, Configuration):
            return (self._data == other._data
                    and self._custom_schemes == other._custom_schemes)
        return NotImplemented

    def __hash__(self):
        return hash(tuple(sorted(self._data.items())))

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get(key)
        if value is None or value == '':
            return default
        return int(value)

    def get_list(self, key: str) -> List[str]:
        value = self.get(key, '')
        return [v.strip() for v in value.split(',') if v.strip()]

    def with_values(self, values: Dict[str, str]) -> 'Configuration':
        data = dict(self._data)
        data.update(values)
        return Configuration(data, self._custom_schemes)

    def with_custom_scheme(
        self,
        name: str,
        scheme: str,
        data: Optional[Dict[str, str]] = None,
    ) -> 'Configuration':
        """Returns a configuration with a custom scheme added.

        Args:
            name (str): Name of the custom scheme.

            scheme (str): Name of the base scheme.

            data (dict, optional): Additional options merged into the
                configuration when a path with the custom scheme is
                resolved.

        .. note:: This feature is experimental.
        """
        if data is None:
            data = {}
        else:
            data = data.copy()

        data["scheme"] = scheme
        schemes = dict(self._custom_schemes)
        schemes[name] = data
        return Configuration(self._data, schemes)

    def custom_scheme(self, name: str) -> Optional[Dict[str, str]]:
        """Returns a custom scheme.

        Returns:
            dict: Custom scheme data. ``None`` if the custom scheme is not
                  registered.

        .. note:: This feature is experimental.
        """
        if name not in self._custom_schemes:
            return None
        return dict(self._custom_schemes[name])
