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

"""Synchronizes the records of a DNS target with the current IP"""

import logging
import sys
import threading
from typing import Dict, List, Optional, Tuple

if sys.version_info < (3, 10):
    from importlib_metadata import entry_points
else:
    from importlib.metadata import entry_points

from . import providers
from .configuration import DNSTarget, DesiredRecord
from .exceptions import (CancelledError, FatalSyncError, FatalUpdateError,
                         ProviderNotFoundError, SyncError, UpdateError)
from .providers import Provider
from .signing import mask_credential


class DNSSyncManager:
    """Keeps one provider instance per provider name and uses them to bring
    DNS targets up to date. Call :meth:`initialize_providers` to register the
    built-in providers; providers installed by other packages under the
    ``ipupdater.provider`` entry point group are loaded on first use.
    """

    def __init__(self):
        #: Logger (see standard :mod:`logging` module)
        self.log: logging.Logger = logging.getLogger('ipupdater.dns')

        #: Registered provider instances, by name
        self.providers: Dict[str, Provider] = dict()

    def register_provider(self, name: str, provider: Provider):
        """Register a provider instance under a name, replacing any provider
        already registered under it

        :param name: Provider name as used in the configuration
        :param provider: The provider instance
        """
        self.providers[name] = provider

    def initialize_providers(self):
        """Register one instance of each built-in provider"""
        for name, provider_cls in providers.providers.items():
            self.register_provider(name, provider_cls())

    def get_provider(self, name: str) -> Provider:
        """Look up a provider by name. If none is registered, try the
        ``ipupdater.provider`` entry point group.

        :param name: Provider name as used in the configuration

        :raises ProviderNotFoundError: if no such provider exists
        """
        try:
            return self.providers[name]
        except KeyError:
            pass

        discovered = entry_points(group='ipupdater.provider')
        try:
            entry_point = discovered[name]
        except KeyError:
            raise ProviderNotFoundError(f"No DNS provider named '{name}'") \
                from None
        self.log.debug("Loading provider %s from %s", name, entry_point.value)
        provider = entry_point.load()()
        self.register_provider(name, provider)
        return provider

    @staticmethod
    def _attach_credentials(provider: Provider, target: DNSTarget) -> str:
        """Give a target's credentials to its provider. A token wins over the
        key pair when the provider accepts tokens.

        :return: The primary credential that was attached
        """
        creds = target.credentials
        if provider.supports_token and creds.token:
            provider.set_credentials(creds.token, '')
            return creds.token
        provider.set_credentials(creds.access_key, creds.secret_key)
        return creds.access_key

    @staticmethod
    def _check_stop(stop_event: Optional[threading.Event]):
        if stop_event is not None and stop_event.is_set():
            raise CancelledError("Stop requested during DNS sync")

    def sync(self, target: DNSTarget, desired_ip: str,
             stop_event: Optional[threading.Event] = None
             ) -> List[DesiredRecord]:
        """Bring every record of a DNS target to the desired IP. Records that
        already hold it are left alone. One failing record does not stop the
        others from being tried.

        :param target: The DNS target
        :param desired_ip: The IP every record should hold
        :param stop_event: Checked before each network call. If set,
                           :exc:`~ipupdater.CancelledError` is raised.

        :return: The records that were written

        :raises ProviderNotFoundError: if the target's provider is unknown
        :raises SyncError: listing every record that failed.
                           :exc:`~ipupdater.FatalSyncError` if every
                           failure was terminal.
        :raises CancelledError: if a stop was requested
        """
        provider = self.get_provider(target.provider)
        self._attach_credentials(provider, target)

        self._check_stop(stop_event)
        current: Dict[Tuple[str, str], str] = dict()
        try:
            observed = provider.get_records(target.domain)
        except UpdateError as e:
            self.log.warning("Could not fetch records for %s, updating all "
                             "records without comparing: %s", target.name, e)
        else:
            for rec in observed:
                current.setdefault((rec.name, rec.type), rec.value)

        written: List[DesiredRecord] = []
        failures: List[Tuple[str, Exception]] = []
        for record in target.records:
            label = f"{record.name}.{target.domain} ({record.type})"
            if current.get((record.name, record.type)) == desired_ip:
                self.log.debug("%s already points to %s", label, desired_ip)
                continue
            self._check_stop(stop_event)
            try:
                provider.update_record(target.domain, record.name,
                                       record.type, desired_ip, record.ttl)
            except UpdateError as e:
                self.log.error("Failed to update %s: %s", label, e)
                failures.append((label, e))
                continue
            self.log.info("Updated %s to %s", label, desired_ip)
            written.append(record)

        if failures:
            if all(isinstance(exc, FatalUpdateError) for _, exc in failures):
                raise FatalSyncError(target.name, failures)
            raise SyncError(target.name, failures)
        return written

    def check(self, target: DNSTarget
              ) -> List[Tuple[DesiredRecord, Optional[str]]]:
        """Check that a DNS target's provider and credentials work, without
        changing anything. The zone's records are fetched once and each
        configured record is reported as found or missing.

        :param target: The DNS target

        :return: Each configured record with its current value, or ``None``
                 if the provider has no such record

        :raises ProviderNotFoundError: if the target's provider is unknown
        :raises UpdateError: if the records could not be fetched, e.g.
                             :exc:`~ipupdater.AuthenticationError` for bad
                             credentials
        """
        provider = self.get_provider(target.provider)
        primary = self._attach_credentials(provider, target)
        self.log.info("Checking %s: provider %s, domain %s, credential %s",
                      target.name, target.provider, target.domain,
                      mask_credential(primary))

        current: Dict[Tuple[str, str], str] = dict()
        for rec in provider.get_records(target.domain):
            current.setdefault((rec.name, rec.type), rec.value)

        report: List[Tuple[DesiredRecord, Optional[str]]] = []
        for record in target.records:
            label = f"{record.name}.{target.domain} ({record.type})"
            value = current.get((record.name, record.type))
            if value is not None:
                self.log.info("Found %s: %s", label, value)
            elif provider.create_missing:
                self.log.warning("Missing %s, it will be created on the next "
                                 "update", label)
            else:
                self.log.warning("Missing %s, it will not be created; updates "
                                 "to it will fail", label)
            report.append((record, value))
        return report
