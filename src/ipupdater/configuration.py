#  IP Updater - Keeps DNS records and config files on the current IP
#  Copyright (C) 2023 Dominick C. Pastore
#
#  This program is free software: you can redistribute it and/or modify
#  it under the terms of the GNU General Public License as published by
#  the Free Software Foundation, either version 3 of the License, or
#  (at your option) any later version.
#
#  This program is distributed in the hope that it will be useful,
#  but WITHOUT ANY WARRANTY; without even the implied warranty of
#  MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#  GNU General Public License for more details.
#
#  You should have received a copy of the GNU General Public License
#  along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""IP Updater configuration parsing"""

import pathlib
import sys
from typing import (Any, BinaryIO, Callable, Dict, List, NamedTuple,
                    Optional, Set, Tuple, Union)

if sys.version_info < (3, 10):
    from importlib_metadata import version, PackageNotFoundError
else:
    from importlib.metadata import version, PackageNotFoundError

if sys.version_info < (3, 11):
    import tomli as tomllib
else:
    import tomllib

from .exceptions import ConfigError


def _get_version() -> str:
    try:
        return version('ipupdater')
    except PackageNotFoundError:
        return 'unknown'


USER_AGENT = f"ipupdater/{_get_version()}"

#: Ceiling applied when retries are unbounded
UNBOUNDED_ATTEMPTS = 999999

DEFAULT_CHECK_INTERVAL = 600
DEFAULT_API_ENDPOINTS = [
    'https://api.ipify.org',
    'https://ipv4.icanhazip.com',
    'https://checkip.amazonaws.com',
]
DEFAULT_WEB_ENDPOINTS = [
    'https://ifconfig.me/ip',
    'https://ipinfo.io/ip',
]
DEFAULT_DETECTION_TIMEOUT = 30
DEFAULT_RETRY_INTERVAL = 60
DEFAULT_MAX_RETRIES = -1
DEFAULT_TTL = 600
DEFAULT_LOG_LEVEL = 'info'
DEFAULT_LOG_FILE = '/var/log/ip_updater/ip_updater.log'
DEFAULT_LOG_MAX_SIZE = 100
DEFAULT_LOG_MAX_AGE = 30

LOG_LEVELS = ('debug', 'info', 'warn', 'warning', 'error', 'critical')
FILE_FORMATS = ('json', 'yaml', 'yml', 'toml', 'ini')


class Credentials(NamedTuple):
    """Credentials for a DNS provider. Any of them may be empty."""

    access_key: str = ''
    secret_key: str = ''
    token: str = ''


class DesiredRecord(NamedTuple):
    """A DNS record that should point at the current IP"""

    #: Name relative to the zone, ``'@'`` for the apex
    name: str
    #: Record type, normally ``'A'``
    type: str = 'A'
    #: TTL in seconds
    ttl: int = DEFAULT_TTL


class DNSTarget(NamedTuple):
    """A set of records in one zone at one DNS provider"""

    #: Label used in logs and errors
    name: str
    #: Registered provider name, e.g. ``'cloudflare'``
    provider: str
    credentials: Credentials
    #: The zone, e.g. ``'example.com'``
    domain: str
    records: Tuple[DesiredRecord, ...]


class FileTarget(NamedTuple):
    """A single value inside a structured configuration file"""

    #: Label used in logs and errors
    name: str
    path: str
    #: ``'json'``, ``'yaml'``, ``'toml'`` or ``'ini'``
    format: str
    #: Slash-delimited key path, e.g. ``'server/public_ip'``
    key_path: str
    #: Whether to copy the original to ``<path>.backup`` before writing
    backup: bool = False


class RetryPolicy(NamedTuple):
    """How often and how many times a failing target is attempted per cycle"""

    #: Seconds to wait between attempts
    interval: float = DEFAULT_RETRY_INTERVAL
    #: Total attempts per cycle, or ``-1`` for unbounded
    max_attempts: int = DEFAULT_MAX_RETRIES

    def attempt_limit(self) -> int:
        """The effective number of attempts, with the unbounded ceiling
        applied"""
        if self.max_attempts < 0:
            return UNBOUNDED_ATTEMPTS
        return self.max_attempts


class Config:
    """IP Updater configuration data"""

    def __init__(self,
                 check_interval: float = DEFAULT_CHECK_INTERVAL,
                 api_endpoints: Optional[List[str]] = None,
                 web_endpoints: Optional[List[str]] = None,
                 detection_timeout: float = DEFAULT_DETECTION_TIMEOUT,
                 dns_targets: Optional[List[DNSTarget]] = None,
                 file_targets: Optional[List[FileTarget]] = None,
                 retry: Optional[RetryPolicy] = None,
                 log_level: str = DEFAULT_LOG_LEVEL,
                 log_file: str = DEFAULT_LOG_FILE,
                 log_max_size: int = DEFAULT_LOG_MAX_SIZE,
                 log_max_age: int = DEFAULT_LOG_MAX_AGE):
        #: Seconds between checks of the public IP
        self.check_interval: float = check_interval

        #: Plain-text IP services, tried first
        self.api_endpoints: List[str] = (list(DEFAULT_API_ENDPOINTS)
                                         if api_endpoints is None
                                         else api_endpoints)

        #: Fallback IP services
        self.web_endpoints: List[str] = (list(DEFAULT_WEB_ENDPOINTS)
                                         if web_endpoints is None
                                         else web_endpoints)

        #: Timeout for each IP detection request
        self.detection_timeout: float = detection_timeout

        #: DNS targets, in configuration order
        self.dns_targets: List[DNSTarget] = dns_targets or []

        #: File targets, in configuration order
        self.file_targets: List[FileTarget] = file_targets or []

        #: Retry policy applied to every target
        self.retry: RetryPolicy = retry or RetryPolicy()

        #: Log level name, e.g. ``'info'``
        self.log_level: str = log_level

        #: ``'stderr'``, ``'syslog'`` or a log file path
        self.log_file: str = log_file

        #: Size in MB at which the log file is rotated
        self.log_max_size: int = log_max_size

        #: Days of rotated log files to keep
        self.log_max_age: int = log_max_age


def _get_table(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key, {})
    if not isinstance(value, dict):
        raise ConfigError(f"Config option '{key}' must be a table")
    return value


def _get_number(table: Dict[str, Any], key: str, default: float,
                where: str, minimum: float = 0) -> Any:
    value = table.get(key, default)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"{where} option '{key}' must be a number")
    if value < minimum:
        raise ConfigError(f"{where} option '{key}' must be at least "
                          f"{minimum}")
    return value


def _get_str(table: Dict[str, Any], key: str, where: str,
             default: Optional[str] = None) -> str:
    try:
        value = table[key]
    except KeyError:
        if default is None:
            raise ConfigError(f"{where} requires '{key}' config option") \
                from None
        return default
    if not isinstance(value, str):
        raise ConfigError(f"{where} option '{key}' must be a string")
    return value


def _get_str_list(table: Dict[str, Any], key: str,
                  default: List[str]) -> List[str]:
    value = table.get(key)
    if value is None or value == []:
        return list(default)
    if (not isinstance(value, list) or
            not all(isinstance(v, str) for v in value)):
        raise ConfigError(f"Config option '{key}' must be a list of strings")
    return value


def _process_records(raw: Any, where: str) -> Tuple[DesiredRecord, ...]:
    if not isinstance(raw, list) or not raw:
        raise ConfigError(f"{where} requires at least one [[record]]")
    records: List[DesiredRecord] = []
    seen: Set[Tuple[str, str]] = set()
    for i, rec in enumerate(raw):
        rec_where = f"{where} record {i + 1}"
        if not isinstance(rec, dict):
            raise ConfigError(f"{rec_where} must be a table")
        name = _get_str(rec, 'name', rec_where)
        rec_type = _get_str(rec, 'type', rec_where, 'A').upper()
        ttl = _get_number(rec, 'ttl', DEFAULT_TTL, rec_where, 1)
        if (name, rec_type) in seen:
            raise ConfigError(f"{where} has duplicate {rec_type} record "
                              f"'{name}'")
        seen.add((name, rec_type))
        records.append(DesiredRecord(name, rec_type, int(ttl)))
    return tuple(records)


def _process_dns_target(raw: Any, index: int,
                        decrypt: Callable[[str], str]) -> DNSTarget:
    where = f"DNS updater {index + 1}"
    if not isinstance(raw, dict):
        raise ConfigError(f"{where} must be a table")
    name = _get_str(raw, 'name', where)
    where = f"DNS updater {name}"
    provider = _get_str(raw, 'provider', where).lower()
    domain = _get_str(raw, 'domain', where)

    creds = {}
    for key in ('access_key', 'secret_key', 'token'):
        value = _get_str(raw, key, where, '')
        if value:
            try:
                value = decrypt(value)
            except Exception as e:
                raise ConfigError(f"{where}: could not decrypt '{key}': "
                                  f"{e}") from e
        creds[key] = value
    credentials = Credentials(**creds)
    if not credentials.token and not (credentials.access_key and
                                      credentials.secret_key):
        raise ConfigError(f"{where} requires either 'token' or both "
                          "'access_key' and 'secret_key'")

    records = _process_records(raw.get('record'), where)
    return DNSTarget(name, provider, credentials, domain, records)


def _process_file_target(raw: Any, index: int) -> FileTarget:
    where = f"File updater {index + 1}"
    if not isinstance(raw, dict):
        raise ConfigError(f"{where} must be a table")
    name = _get_str(raw, 'name', where)
    where = f"File updater {name}"
    path = _get_str(raw, 'file_path', where)
    file_format = _get_str(raw, 'format', where).lower()
    if file_format not in FILE_FORMATS:
        raise ConfigError(f"{where} has unsupported format '{file_format}'")
    key_path = _get_str(raw, 'key_path', where)
    if not [seg for seg in key_path.split('/') if seg]:
        raise ConfigError(f"{where} has an empty 'key_path'")
    backup = raw.get('backup', False)
    if not isinstance(backup, bool):
        raise ConfigError(f"{where} option 'backup' must be true or false")
    return FileTarget(name, path, file_format, key_path, backup)


def _check_unique_names(kind: str, names: List[str]):
    seen: Set[str] = set()
    for name in names:
        if name in seen:
            raise ConfigError(f"Duplicate {kind} name '{name}'")
        seen.add(name)


def _process_config(data: Dict[str, Any],
                    decrypt: Optional[Callable[[str], str]]) -> Config:
    """Process parsed TOML into a :class:`Config`

    :param data: The parsed TOML document
    :param decrypt: Callable applied to each non-empty credential, or
                    ``None`` to use credentials as written
    :raises ConfigError: if the configuration is invalid
    :returns: the processed and validated configuration
    """
    if decrypt is None:
        def decrypt(value):
            return value

    check_interval = _get_number(data, 'check_interval',
                                 DEFAULT_CHECK_INTERVAL, 'Config', 1)

    detection = _get_table(data, 'ip_detection')
    api_endpoints = _get_str_list(detection, 'api_endpoints',
                                  DEFAULT_API_ENDPOINTS)
    web_endpoints = _get_str_list(detection, 'web_endpoints',
                                  DEFAULT_WEB_ENDPOINTS)
    timeout = _get_number(detection, 'timeout', DEFAULT_DETECTION_TIMEOUT,
                          'IP detection', 1)

    raw_dns = data.get('dns_updater', [])
    raw_files = data.get('file_updater', [])
    if not isinstance(raw_dns, list) or not isinstance(raw_files, list):
        raise ConfigError("'dns_updater' and 'file_updater' must be arrays of "
                          "tables")
    dns_targets = [_process_dns_target(raw, i, decrypt)
                   for i, raw in enumerate(raw_dns)]
    file_targets = [_process_file_target(raw, i)
                    for i, raw in enumerate(raw_files)]
    _check_unique_names('DNS updater', [t.name for t in dns_targets])
    _check_unique_names('file updater', [t.name for t in file_targets])

    retry_table = _get_table(data, 'retry')
    interval = _get_number(retry_table, 'interval', DEFAULT_RETRY_INTERVAL,
                           'Retry')
    max_retries = _get_number(retry_table, 'max_retries',
                              DEFAULT_MAX_RETRIES, 'Retry', -1)
    if int(max_retries) != max_retries or max_retries == 0:
        raise ConfigError("Retry option 'max_retries' must be -1 (unbounded) "
                          "or a positive whole number")

    logging_table = _get_table(data, 'logging')
    log_level = _get_str(logging_table, 'level', 'Logging',
                         DEFAULT_LOG_LEVEL).lower()
    if log_level not in LOG_LEVELS:
        raise ConfigError(f"Unknown log level '{log_level}'")

    return Config(
        check_interval=check_interval,
        api_endpoints=api_endpoints,
        web_endpoints=web_endpoints,
        detection_timeout=timeout,
        dns_targets=dns_targets,
        file_targets=file_targets,
        retry=RetryPolicy(interval, int(max_retries)),
        log_level=log_level,
        log_file=_get_str(logging_table, 'file_path', 'Logging',
                          DEFAULT_LOG_FILE),
        log_max_size=int(_get_number(logging_table, 'max_size',
                                     DEFAULT_LOG_MAX_SIZE, 'Logging', 1)),
        log_max_age=int(_get_number(logging_table, 'max_age',
                                    DEFAULT_LOG_MAX_AGE, 'Logging')),
    )


def read_config_from_path(
    filename: Union[str, pathlib.Path],
    decrypt: Optional[Callable[[str], str]] = None,
) -> Config:
    """Read configuration from the named file or :class:`~pathlib.Path`

    :param filename: Filename or path to read from
    :param decrypt: Optional callable applied to each credential value
    :raises ConfigError: if the config file cannot be read or is invalid
    :return: A :class:`Config` ready to be passed to
             :class:`~ipupdater.UpdateManager`
    """
    try:
        with open(filename, 'rb') as f:
            return read_config(f, decrypt)
    except OSError as e:
        raise ConfigError("Could not read config file %s: %s" %
                          (filename, e.strerror)) from e


def read_config(configfile: BinaryIO,
                decrypt: Optional[Callable[[str], str]] = None) -> Config:
    """Read configuration in from a TOML file opened in binary mode

    :param configfile: Filelike object to read the config from
    :param decrypt: Optional callable applied to each credential value
    :raises ConfigError: if the config file cannot be read or is invalid
    :return: A :class:`Config` ready to be passed to
             :class:`~ipupdater.UpdateManager`
    """
    try:
        data = tomllib.load(configfile)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError("Error in config file: %s" % e) from e

    return _process_config(data, decrypt)
