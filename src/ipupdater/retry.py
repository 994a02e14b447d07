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

"""Per-target retry state machine"""

import enum
import logging
import threading
from typing import Any, Callable, Optional

from .configuration import RetryPolicy
from .exceptions import CancelledError, FatalUpdateError, IPUpdaterException


log = logging.getLogger('ipupdater.retry')


class TargetState(enum.Enum):
    PENDING = 'pending'
    ATTEMPTING = 'attempting'
    SUCCEEDED = 'succeeded'
    FAILED_RETRYABLE = 'failed (retryable)'
    FAILED_TERMINAL = 'failed (terminal)'


class TargetResult:
    """The outcome of one target in one update cycle

    :param name: Target name
    :param kind: ``'dns'`` or ``'file'``
    """

    def __init__(self, name: str, kind: str):
        self.name: str = name
        self.kind: str = kind
        self.state: TargetState = TargetState.PENDING

        #: Number of attempts made so far
        self.attempts: int = 0

        #: The exception from the most recent failed attempt
        self.error: Optional[BaseException] = None

        #: Return value of the successful attempt
        self.value: Any = None

    @property
    def label(self) -> str:
        return f"{self.kind} target {self.name}"

    @property
    def succeeded(self) -> bool:
        return self.state == TargetState.SUCCEEDED

    def __repr__(self):
        return (f"TargetResult({self.name!r}, {self.kind!r}, {self.state}, "
                f"attempts={self.attempts})")


def is_terminal(exc: BaseException) -> bool:
    """Whether retrying after an exception is known to be futile. Exceptions
    that are not IP Updater exceptions are unexpected and also terminal."""
    return (isinstance(exc, FatalUpdateError) or
            not isinstance(exc, IPUpdaterException))


class Retrier:
    """Attempts a target until it succeeds, fails terminally or runs out of
    attempts, waiting the policy interval between attempts

    :param policy: The retry policy
    :param stop_event: When set, waiting stops and the target is abandoned
                       with :exc:`~ipupdater.CancelledError`
    """

    def __init__(self, policy: RetryPolicy,
                 stop_event: Optional[threading.Event] = None):
        self.policy: RetryPolicy = policy
        self.stop_event: threading.Event = (threading.Event()
                                            if stop_event is None
                                            else stop_event)

    def run(self, result: TargetResult, func: Callable, *args) -> TargetResult:
        """Call ``func(*args)`` under the retry policy, recording progress in
        ``result``

        :param result: The result object for the target, updated in place
        :param func: The update to attempt
        :return: ``result``
        :raises CancelledError: if a stop was requested
        """
        limit = self.policy.attempt_limit()
        while True:
            if self.stop_event.is_set():
                raise CancelledError(f"Stop requested before attempting "
                                     f"{result.label}")
            result.state = TargetState.ATTEMPTING
            result.attempts += 1
            try:
                result.value = func(*args)
            except CancelledError:
                raise
            except Exception as e:
                result.error = e
                if is_terminal(e):
                    result.state = TargetState.FAILED_TERMINAL
                    if isinstance(e, IPUpdaterException):
                        log.error("Attempt %d for %s failed, not retrying: "
                                  "%s", result.attempts, result.label, e)
                    else:
                        log.exception("Unexpected error updating %s",
                                      result.label)
                    return result
                result.state = TargetState.FAILED_RETRYABLE
                log.error("Attempt %d for %s failed: %s", result.attempts,
                          result.label, e)
            else:
                result.state = TargetState.SUCCEEDED
                result.error = None
                return result

            if result.attempts >= limit:
                log.error("Giving up on %s after %d attempts", result.label,
                          result.attempts)
                return result
            log.warning("Retrying %s in %s seconds", result.label,
                        self.policy.interval)
            if self.stop_event.wait(self.policy.interval):
                raise CancelledError(f"Stop requested while waiting to retry "
                                     f"{result.label}")
