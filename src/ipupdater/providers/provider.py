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

"""Base class for IP Updater DNS providers"""

import logging
from json import JSONDecodeError
# abstractmethod only marks methods for the docs. Provider is not an ABC.
from abc import abstractmethod
from typing import Any, Dict, List, NamedTuple, Optional, Union

import requests

from ..configuration import USER_AGENT
from ..exceptions import (UpdateError, TransientNetworkError,
                          AuthenticationError, NotFoundError)
from ..signing import mask_credential


#: Default timeout for provider API requests, in seconds
DEFAULT_TIMEOUT = 30


class ObservedRecord(NamedTuple):
    """A DNS record as currently published by a provider"""

    #: Record name relative to the zone, ``'@'`` for the apex
    name: str
    #: Record type, e.g. ``'A'``
    type: str
    #: Record value, e.g. ``'203.0.113.7'``
    value: str
    #: TTL in seconds
    ttl: int


class Provider:
    """Base class for IP Updater DNS providers. Sets up the logger, stores
    credentials and provides a shared helper for HTTP API requests. Subclasses
    implement :meth:`get_records` and :meth:`update_record`.

    :param endpoint: API base URL. Normally not required, but can be used to
                     point at a sandbox environment.
    :param timeout: Timeout for each HTTP request, in seconds
    :param create_missing: Whether :meth:`update_record` creates a record
                           when none matches. ``None`` keeps the provider's
                           default.
    """

    #: Name this provider is registered under
    provider_name: str = ''

    #: Whether the provider authenticates with a single API token
    supports_token: bool = False

    #: Whether :meth:`update_record` creates a record when none matches
    create_missing: bool = False

    #: API base URL
    default_endpoint: str = ''

    def __init__(self, endpoint: Optional[str] = None,
                 timeout: float = DEFAULT_TIMEOUT,
                 create_missing: Optional[bool] = None):
        #: Logger (see standard :mod:`logging` module)
        self.log: logging.Logger = logging.getLogger(
            f'ipupdater.provider.{self.provider_name}'
        )

        #: API base URL in use
        self.endpoint: str = endpoint or self.default_endpoint

        #: Timeout for each HTTP request
        self.timeout: float = timeout

        if create_missing is not None:
            self.create_missing = create_missing

        #: Access key, SecretId, AK, API key or API token
        self.primary: str = ''

        #: Secret key, SK or API secret. Empty for token authentication.
        self.secondary: str = ''

    def get_provider_name(self) -> str:
        """Get the name this provider is registered under"""
        return self.provider_name

    def set_credentials(self, primary: str, secondary: str):
        """Attach credentials for subsequent requests. They are stored as-is;
        bad credentials only surface as :exc:`~ipupdater.AuthenticationError`
        on the next request.

        :param primary: Access key, key ID or API token
        :param secondary: Secret key, or ``''`` when using a token
        """
        self.primary = primary
        self.secondary = secondary
        self.log.debug("Credentials set (primary: %s, secondary: %s)",
                       mask_credential(primary), mask_credential(secondary))

    @abstractmethod
    def get_records(self, domain: str) -> List[ObservedRecord]:
        """Fetch the records currently published in a zone

        :param domain: The zone, e.g. ``'example.com'``

        :return: A list of records, empty if the zone has none

        :raises AuthenticationError: if the credentials are rejected
        :raises NotFoundError: if the zone is not known to the provider
        :raises UpdateError: on any other failure
        """
        raise NotImplementedError

    @abstractmethod
    def update_record(self, domain: str, name: str, rec_type: str, value: str,
                      ttl: int):
        """Set the value of a record. The provider's records are read first to
        find the one to modify; the first record matching both ``name`` and
        ``rec_type`` is the one changed.

        :param domain: The zone, e.g. ``'example.com'``
        :param name: Record name relative to the zone, ``'@'`` for the apex
        :param rec_type: Record type, e.g. ``'A'``
        :param value: New record value
        :param ttl: TTL in seconds

        :raises RecordNotFoundError: if no record matches and
                                     :attr:`create_missing` is off
        :raises UpdateError: on any other failure
        """
        raise NotImplementedError

    def _request(self, method: str, url: str,
                 params: Optional[Dict[str, Any]] = None,
                 json: Any = None,
                 data: Optional[Union[str, bytes]] = None,
                 headers: Optional[Dict[str, str]] = None) -> Any:
        """Issue an API request and decode the JSON response.

        :param method: HTTP method, e.g. ``'GET'`` or ``'PUT'``
        :param url: Full URL to request
        :param params: A dict of URL parameters
        :param json: A JSON-serializable object to become the request body
        :param data: A pre-encoded request body (used when the body must match
                     what was signed byte for byte)
        :param headers: Additional headers, e.g. authorization

        :return: The decoded JSON body, or ``None`` if the body was empty

        :raises TransientNetworkError: on connection errors, timeouts, HTTP
                                       5xx and HTTP 429
        :raises AuthenticationError: on HTTP 401 and 403
        :raises NotFoundError: on HTTP 404
        :raises UpdateError: on any other failure
        """
        all_headers = {'User-Agent': USER_AGENT, 'Accept': 'application/json'}
        if headers is not None:
            all_headers.update(headers)
        try:
            r = requests.request(method, url, params=params, json=json,
                                 data=data, headers=all_headers,
                                 timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            self.log.error("Could not %s %s: %s", method, url, e)
            raise TransientNetworkError(f"Could not {method} {url}: {e}") \
                from e

        body = None
        if r.text:
            try:
                body = r.json()
            except (JSONDecodeError, ValueError):
                if r.status_code < 400:
                    self.log.error("Could not parse JSON response from %s "
                                   "%s:\n%s", method, url, r.text)
                    raise UpdateError(f"Could not parse JSON response from "
                                      f"{method} {url}") from None

        # Provider-specific error bodies take priority over the status code
        self._check_api_error(r.status_code, body)

        if r.status_code < 400:
            return body
        self.log.error("Received HTTP %d when trying to %s %s:\n%s",
                       r.status_code, method, url, r.text)
        if r.status_code in (401, 403):
            raise AuthenticationError(f"{self.provider_name} rejected the "
                                      f"credentials (HTTP {r.status_code})")
        if r.status_code == 404:
            raise NotFoundError(f"{self.provider_name} returned HTTP 404 for "
                                f"{method} {url}")
        if r.status_code == 429 or r.status_code >= 500:
            raise TransientNetworkError(f"HTTP {r.status_code} from "
                                        f"{method} {url}")
        raise UpdateError(f"HTTP {r.status_code} from {method} {url}")

    def _check_api_error(self, status: int, body: Any):
        """Raise a typed error if a response body reports a provider error.
        The default does nothing; the status code alone decides.

        :param status: HTTP status code
        :param body: Decoded JSON body, or ``None``
        """

    @staticmethod
    def _to_fqdn(name: str, domain: str) -> str:
        """Convert a zone-relative name (``'@'`` for the apex) to a full
        name without a trailing dot"""
        if name in ('@', ''):
            return domain
        return f"{name}.{domain}"

    @staticmethod
    def _to_relative(fqdn: str, domain: str) -> str:
        """Convert a full name (with or without trailing dot) to a
        zone-relative name, ``'@'`` for the apex"""
        fqdn = fqdn.rstrip('.')
        domain = domain.rstrip('.')
        if fqdn.lower() == domain.lower():
            return '@'
        suffix = '.' + domain
        if fqdn.lower().endswith(suffix.lower()):
            return fqdn[:-len(suffix)]
        return fqdn
