# -*- coding: utf-8 -*-
"""Configuration.

The configuration file is a ``.env`` style list of ``KEY=VALUE`` lines,
parsed with python-dotenv. It is read once and turned into an immutable
``Config`` that is handed to everything else.
"""
import enum
import os
from typing import NamedTuple, Optional, Tuple

from dotenv import dotenv_values

from .constants import (CONFIG_FILE_NAMES, ERR_CONFIG_FILE_DOES_NOT_EXIST,
                        ERR_CONFIG_KEY_MISSING, ERR_CONFIG_VALUE_INVALID,
                        ETC_CONFIG_FILES)
from .errors import ConfigError

TRUE_VALUES = ('1', 'yes', 'true')
FALSE_VALUES = ('0', 'no', 'false')

REQUIRED_KEYS = ('BACKUP_DIRECTORY', 'BACKUP_RETENTION_DAYS', 'SSH_HOST',
                 'SSH_USER', 'SSH_BACKUP_HOME')
MYSQL_KEYS = ('MYSQL_HOST', 'MYSQL_USER', 'MYSQL_PASSWORD', 'MYSQL_DATABASES')
PGSQL_KEYS = ('PGSQL_HOST', 'PGSQL_USER', 'PGSQL_DATABASES')
NOTIFY_KEYS = ('SMTP_HOST', 'SMTP_PORT', 'SMTP_FROM', 'SMTP_TO')


class CompressionKind(enum.Enum):
    GZIP = 'gzip'
    XZ = 'xz'
    NONE = 'none'


class Config(NamedTuple):
    backup_directory: str
    retention_days: int
    ssh_host: str
    ssh_user: str
    ssh_backup_home: str
    ssh_port: int = 22
    ssh_connect_timeout: int = 10
    compression: CompressionKind = CompressionKind.GZIP
    exclusion_patterns: Tuple[str, ...] = ()
    with_mysql: bool = False
    mysql_host: str = 'localhost'
    mysql_user: Optional[str] = None
    mysql_password: Optional[str] = None
    mysql_databases: Tuple[str, ...] = ()
    with_pgsql: bool = False
    pgsql_host: str = 'localhost'
    pgsql_user: Optional[str] = None
    pgsql_password: Optional[str] = None
    pgsql_databases: Tuple[str, ...] = ()
    with_crypt: bool = False
    crypt_password: Optional[str] = None
    notify: bool = False
    smtp_host: Optional[str] = None
    smtp_port: int = 25
    smtp_encryption: str = 'tls'
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    smtp_from: Optional[str] = None
    smtp_to: Optional[str] = None
    source: Optional[str] = None


def candidate_paths(cwd=None, home=None):
    """Config file locations, in the order they are tried."""
    cwd = cwd or os.getcwd()
    home = home or os.path.expanduser('~')
    paths = [os.path.join(cwd, n) for n in CONFIG_FILE_NAMES]
    paths += [os.path.join(home, n) for n in CONFIG_FILE_NAMES]
    paths += list(ETC_CONFIG_FILES)
    return paths


def find_config(conf=None, cwd=None, home=None):
    """Returns the config file to use.

    An explicitly passed ``conf`` must exist. Otherwise the first
    readable file of ``candidate_paths()`` wins.

    :raises ConfigError: If no file can be found.
    """
    if conf:
        path = os.path.expanduser(conf)
        if not os.path.isfile(path):
            raise ConfigError(ERR_CONFIG_FILE_DOES_NOT_EXIST.format(path))
        return path

    candidates = candidate_paths(cwd, home)
    for path in candidates:
        if os.path.isfile(path) and os.access(path, os.R_OK):
            return path
    raise ConfigError(ERR_CONFIG_FILE_DOES_NOT_EXIST.format(
        '\n'.join(candidates)))


def load_config(path):
    """Reads, validates and converts the config file at ``path``."""
    return parse_config(dotenv_values(path), source=path)


def parse_config(values, source='<config>'):
    """Builds a ``Config`` from raw string ``values``.

    :raises ConfigError: On missing keys or malformed values.
    """
    values = {k: (v.strip() if isinstance(v, str) else v)
              for k, v in values.items()}

    def get(key, default=None):
        val = values.get(key)
        if val is None or val == '':
            return default
        return val

    def require(keys):
        for key in keys:
            if get(key) is None:
                raise ConfigError(ERR_CONFIG_KEY_MISSING.format(key, source))

    def flag(key):
        val = get(key)
        if val is None:
            return False
        if val.lower() in TRUE_VALUES:
            return True
        if val.lower() in FALSE_VALUES:
            return False
        raise ConfigError(ERR_CONFIG_VALUE_INVALID.format(val, key, source))

    def number(key, default):
        val = get(key)
        if val is None:
            return default
        try:
            num = int(val)
        except ValueError:
            raise ConfigError(ERR_CONFIG_VALUE_INVALID.format(val, key, source))
        if num < 0:
            raise ConfigError(ERR_CONFIG_VALUE_INVALID.format(val, key, source))
        return num

    def words(key):
        return tuple(get(key, '').split())

    require(REQUIRED_KEYS)

    with_mysql = flag('WITH_MYSQL')
    if with_mysql:
        require(MYSQL_KEYS)
    with_pgsql = flag('WITH_PGSQL')
    if with_pgsql:
        require(PGSQL_KEYS)
    with_crypt = flag('WITH_CRYPT')
    if with_crypt:
        require(['CRYPT_PASSWORD'])
    notify = flag('NOTIFY')
    if notify:
        require(NOTIFY_KEYS)

    compression = get('COMPRESSION', CompressionKind.GZIP.value).lower()
    try:
        compression = CompressionKind(compression)
    except ValueError:
        raise ConfigError(ERR_CONFIG_VALUE_INVALID.format(
            compression, 'COMPRESSION', source))

    patterns = tuple(p.strip() for p in get('EXCLUSION_PATTERNS', '')
                     .replace('\n', ',').split(',') if p.strip())

    return Config(
        backup_directory=get('BACKUP_DIRECTORY').rstrip('/') or '/',
        retention_days=number('BACKUP_RETENTION_DAYS', 0),
        ssh_host=get('SSH_HOST'),
        ssh_user=get('SSH_USER'),
        ssh_backup_home=get('SSH_BACKUP_HOME').rstrip('/') or '/',
        ssh_port=number('SSH_PORT', 22),
        ssh_connect_timeout=number('SSH_CONNECT_TIMEOUT', 10),
        compression=compression,
        exclusion_patterns=patterns,
        with_mysql=with_mysql,
        mysql_host=get('MYSQL_HOST', 'localhost'),
        mysql_user=get('MYSQL_USER'),
        mysql_password=get('MYSQL_PASSWORD'),
        mysql_databases=words('MYSQL_DATABASES'),
        with_pgsql=with_pgsql,
        pgsql_host=get('PGSQL_HOST', 'localhost'),
        pgsql_user=get('PGSQL_USER'),
        pgsql_password=get('PGSQL_PASSWORD'),
        pgsql_databases=words('PGSQL_DATABASES'),
        with_crypt=with_crypt,
        crypt_password=get('CRYPT_PASSWORD'),
        notify=notify,
        smtp_host=get('SMTP_HOST'),
        smtp_port=number('SMTP_PORT', 25),
        smtp_encryption=get('SMTP_ENCRYPTION', 'tls').lower(),
        smtp_user=get('SMTP_USER'),
        smtp_password=get('SMTP_PASSWORD'),
        smtp_from=get('SMTP_FROM'),
        smtp_to=get('SMTP_TO'),
        source=source)
