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

"""Update cycle orchestration"""

import logging
import threading
from typing import List, Optional

from . import configuration
from .detector import IPDetector
from .dnssync import DNSSyncManager
from .exceptions import CancelledError, CycleError, DetectError
from .fileupdate import FileUpdater
from .retry import Retrier, TargetResult


class UpdateManager:
    """Manages the rest of the IP Updater system. Runs each DNS and file
    target through the retry policy and reports failures for the whole cycle
    at once.

    :param config: A :class:`~ipupdater.Config` with the configuration to use
    :param dns_manager: The :class:`~ipupdater.DNSSyncManager` to use. By
                        default, one is created with the built-in providers.
    :param stop_event: Event that, once set, stops updates and polling. By
                       default, a new one is created; :meth:`stop` sets it.
    """

    def __init__(self, config: configuration.Config,
                 dns_manager: Optional[DNSSyncManager] = None,
                 stop_event: Optional[threading.Event] = None):
        self.log = logging.getLogger('ipupdater.manager')
        self.config = config

        if dns_manager is None:
            dns_manager = DNSSyncManager()
            dns_manager.initialize_providers()
        #: DNS sync manager
        self.dns_manager: DNSSyncManager = dns_manager

        #: Set to stop updates and polling
        self.stop_event: threading.Event = (threading.Event()
                                            if stop_event is None
                                            else stop_event)

        self.retrier = Retrier(config.retry, self.stop_event)

        #: IP written by the last fully successful cycle
        self.last_ip: Optional[str] = None

    def _run_dns(self, ip: str) -> List[TargetResult]:
        results = []
        for target in self.config.dns_targets:
            result = TargetResult(target.name, 'dns')
            self.retrier.run(result, self.dns_manager.sync, target, ip,
                             self.stop_event)
            results.append(result)
        return results

    def _run_files(self, ip: str) -> List[TargetResult]:
        results = []
        for target in self.config.file_targets:
            result = TargetResult(target.name, 'file')
            self.retrier.run(result, FileUpdater(target).update_ip, ip)
            results.append(result)
        return results

    @staticmethod
    def _check(results: List[TargetResult]) -> List[TargetResult]:
        """Raise :exc:`~ipupdater.CycleError` if any target failed"""
        failures = [(r.label, r.error) for r in results if not r.succeeded]
        if failures:
            raise CycleError(failures, results)
        return results

    def update_dns(self, ip: str) -> List[TargetResult]:
        """Update every DNS target, in configuration order

        :param ip: The IP every record should hold
        :return: One result per target
        :raises CycleError: if any target failed, after trying them all
        :raises CancelledError: if a stop was requested
        """
        return self._check(self._run_dns(ip))

    def update_files(self, ip: str) -> List[TargetResult]:
        """Update every file target, in configuration order

        :param ip: The IP every file should hold
        :return: One result per target
        :raises CycleError: if any target failed, after trying them all
        :raises CancelledError: if a stop was requested
        """
        return self._check(self._run_files(ip))

    def update_all(self, ip: str) -> List[TargetResult]:
        """Update every DNS target, then every file target

        :param ip: The IP to publish
        :return: One result per target
        :raises CycleError: if any target failed, after trying them all
        :raises CancelledError: if a stop was requested
        """
        self.log.info("Updating all targets to %s", ip)
        results = self._run_dns(ip) + self._run_files(ip)
        self._check(results)
        self.log.info("All targets updated to %s", ip)
        return results

    def run_once(self, detector: IPDetector,
                 ip: Optional[str] = None) -> List[TargetResult]:
        """Detect the current IP (unless given) and update every target

        :param detector: The IP detector
        :param ip: Use this IP instead of detecting it
        :return: One result per target
        :raises DetectError: if the IP could not be detected
        :raises CycleError: if any target failed
        :raises CancelledError: if a stop was requested
        """
        if ip is None:
            ip = detector.get_public_ip()
        self.log.info("Current IP: %s", ip)
        results = self.update_all(ip)
        self.last_ip = ip
        return results

    def run_forever(self, detector: IPDetector):
        """Check the IP every ``check_interval`` seconds and update targets
        when it differs from the last fully successful cycle. Returns once
        :meth:`stop` is called.

        Does not raise any exceptions for failed cycles; they are logged and
        the next check tries again.

        :param detector: The IP detector
        """
        self.log.info("Checking IP every %s seconds",
                      self.config.check_interval)
        while not self.stop_event.is_set():
            try:
                ip = detector.get_public_ip()
            except DetectError as e:
                self.log.error("%s", e)
            else:
                if ip == self.last_ip:
                    self.log.debug("IP unchanged (%s)", ip)
                else:
                    try:
                        self.run_once(detector, ip)
                    except CycleError as e:
                        self.log.error("Update cycle failed: %s", e)
                    except CancelledError:
                        break
            if self.stop_event.wait(self.config.check_interval):
                break
        self.log.info("Stopped.")

    def stop(self):
        """Request a stop. Waits for retries and polling are cut short.

        Does not raise any exceptions, even if not running.
        """
        self.log.info("Stop requested")
        self.stop_event.set()
