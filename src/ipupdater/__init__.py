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

"""IP Updater, keeps DNS records and config files on the current IP

Top-level module, containing classes and objects useful to custom providers
and to programs driving updates directly.
"""

from .configuration import (Config, Credentials, DesiredRecord, DNSTarget,
                            FileTarget, RetryPolicy, read_config,
                            read_config_from_path)
from .exceptions import (IPUpdaterException, SetupError, ConfigError,
                         DetectError, CancelledError, ValidationWarning,
                         UpdateError, TransientNetworkError,
                         RecordNotFoundError, FatalUpdateError,
                         ProviderNotFoundError, AuthenticationError,
                         NotFoundError, InvalidPathError, FormatError,
                         FileAccessError, SyncError, FatalSyncError,
                         CycleError)
from .providers import Provider, ObservedRecord
from .dnssync import DNSSyncManager
from .fileupdate import FileUpdater
from .retry import Retrier, TargetResult, TargetState
from .manager import UpdateManager
from .detector import IPDetector
