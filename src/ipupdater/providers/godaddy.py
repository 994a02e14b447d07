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

"""IP Updater provider for the GoDaddy v1 domains API"""

from pprint import pformat
from typing import Any, List

from ..exceptions import (UpdateError, AuthenticationError, NotFoundError,
                          RecordNotFoundError)
from ..signing import godaddy_headers
from .provider import Provider, ObservedRecord


class GoDaddyProvider(Provider):
    """IP Updater provider for GoDaddy, authenticated with an API key and
    secret. The record PUT endpoint replaces every record with the given type
    and name, so it creates missing records too; that is allowed by default.
    The records are read first so that a creation is logged.
    """

    provider_name = 'godaddy'
    supports_token = False
    create_missing = True
    default_endpoint = 'https://api.godaddy.com/v1'

    def _api_request(self, method: str, api: str, data: Any = None) -> Any:
        headers = godaddy_headers(self.primary, self.secondary)
        return self._request(method, self.endpoint + api, json=data,
                             headers=headers)

    def _check_api_error(self, status: int, body: Any):
        if status < 400 or not isinstance(body, dict):
            return
        code = body.get('code') or ''
        message = f"GoDaddy API error: {code} - {body.get('message', '')}"
        self.log.error("%s (HTTP %d)", message, status)
        if code in ('UNABLE_TO_AUTHENTICATE', 'ACCESS_DENIED'):
            raise AuthenticationError(message)
        if code in ('UNKNOWN_DOMAIN', 'NOT_FOUND'):
            raise NotFoundError(message)

    def _parse_records(self, api: str, response: Any) -> List[ObservedRecord]:
        try:
            return [ObservedRecord(rec['name'], rec['type'], rec['data'],
                                   int(rec.get('ttl') or 0))
                    for rec in response or []]
        except (KeyError, TypeError, ValueError):
            self.log.error("Unknown response structure from %s:\n%s", api,
                           pformat(response))
            raise UpdateError(f"Unknown response structure from {api}") \
                from None

    def get_records(self, domain: str) -> List[ObservedRecord]:
        api = f'/domains/{domain}/records'
        return self._parse_records(api, self._api_request('GET', api))

    def update_record(self, domain: str, name: str, rec_type: str, value: str,
                      ttl: int):
        api = f'/domains/{domain}/records/{rec_type}/{name}'
        existing = self._parse_records(api, self._api_request('GET', api))
        if not any(rec.name == name and rec.type == rec_type
                   for rec in existing):
            if not self.create_missing:
                raise RecordNotFoundError(f"No {rec_type} record {name} in "
                                          f"GoDaddy domain {domain}")
            self.log.info("Creating %s record %s in %s", rec_type, name,
                          domain)
        self._api_request('PUT', api, data=[{'data': value, 'name': name,
                                             'ttl': ttl, 'type': rec_type}])
