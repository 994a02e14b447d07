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

"""All IP Updater exceptions"""

from typing import List, Optional, Tuple


class IPUpdaterException(Exception):
    """Base class for all IP Updater exceptions"""


class SetupError(IPUpdaterException):
    """Base class for IP Updater exceptions that happen during startup"""


class ConfigError(SetupError):
    """Raised when the configuration is malformed or has other errors"""


class DetectError(IPUpdaterException):
    """Raised when the current public IP address could not be determined"""


class CancelledError(IPUpdaterException):
    """Raised when a stop was requested while an update was in progress or
    waiting to retry"""


class ValidationWarning(IPUpdaterException):
    """Raised by IP validation helpers when a value does not look like an IP
    address. Callers log it and carry on; it never blocks an update."""


class UpdateError(IPUpdaterException):
    """Raised when an attempt to update a DNS or file target fails. Doing so
    triggers the retry mechanism."""


class TransientNetworkError(UpdateError):
    """Raised on timeouts, connection errors, HTTP 5xx and rate limiting"""


class RecordNotFoundError(UpdateError):
    """Raised by a provider when no record matches an update and the provider
    is not configured to create missing records"""


class FatalUpdateError(UpdateError):
    """Raised when an update fails in a way retrying cannot fix (bad
    credentials, unknown provider, malformed key path...). The target is not
    retried for the rest of the cycle."""


class ProviderNotFoundError(FatalUpdateError):
    """Raised when a DNS target names a provider that is not registered"""


class AuthenticationError(FatalUpdateError):
    """Raised when a provider rejects the credentials"""


class NotFoundError(FatalUpdateError):
    """Raised when a provider does not know the requested domain or zone"""


class InvalidPathError(FatalUpdateError):
    """Raised when a key path is malformed or runs through a value that is not
    a mapping"""


class FormatError(FatalUpdateError):
    """Raised when a file cannot be parsed or has an unsupported format"""


class FileAccessError(FatalUpdateError):
    """Raised when a file does not exist or cannot be accessed due to
    permissions"""


class SyncError(UpdateError):
    """Raised by the DNS sync manager when one or more records in a target
    could not be brought up to date

    :param target: Name of the DNS target
    :param failures: List of ``(record_label, exception)`` for each failed
                     record
    """

    def __init__(self, target: str, failures: List[Tuple[str, Exception]]):
        self.target = target
        self.failures = failures
        details = "; ".join(f"{label}: {exc}" for label, exc in failures)
        super().__init__(f"{len(failures)} record(s) failed for DNS target "
                         f"{target}: {details}")


class FatalSyncError(SyncError, FatalUpdateError):
    """A :exc:`SyncError` where every failed record failed terminally"""


class CycleError(UpdateError):
    """Raised at the end of an update cycle when any target failed

    :param failures: List of ``(target_label, exception)`` for each failed
                     target
    :param results: The per-target results for the whole cycle, if available
    """

    def __init__(self, failures: List[Tuple[str, Exception]],
                 results: Optional[list] = None):
        self.failures = failures
        self.results = results if results is not None else []
        details = "; ".join(f"{label}: {exc}" for label, exc in failures)
        super().__init__(f"{len(failures)} target(s) failed: {details}")
