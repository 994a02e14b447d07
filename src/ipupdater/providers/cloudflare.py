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

"""IP Updater provider for the Cloudflare v4 API"""

from pprint import pformat
from typing import Any, Dict, List, Optional

from ..exceptions import (UpdateError, AuthenticationError, NotFoundError,
                          RecordNotFoundError)
from ..signing import cloudflare_headers
from .provider import Provider, ObservedRecord


PAGE_SIZE = 100

# Cloudflare error codes for a missing or invalid token
_AUTH_ERROR_CODES = (9103, 9106, 9109, 10000, 10001)


class CloudflareProvider(Provider):
    """IP Updater provider for Cloudflare, authenticated with an API token.
    Cloudflare names records by their full name; this provider converts to
    and from zone-relative names.

    Missing records are reported rather than created unless
    ``create_missing`` is enabled.
    """

    provider_name = 'cloudflare'
    supports_token = True
    create_missing = False
    default_endpoint = 'https://api.cloudflare.com/client/v4'

    def _api_request(self, method: str, api: str,
                     params: Optional[Dict[str, Any]] = None,
                     data: Any = None) -> Dict:
        """Issue an API request.

        :param method: HTTP method
        :param api: Specific API to access, e.g. ``'/zones'``
        :param params: A dict of URL parameters
        :param data: A JSON-serializable object to become the request body

        :return: The decoded response envelope
        """
        response = self._request(method, self.endpoint + api, params=params,
                                 json=data,
                                 headers=cloudflare_headers(self.primary))
        if not isinstance(response, dict) or 'result' not in response:
            self.log.error("Unknown response structure from %s:\n%s", api,
                           pformat(response))
            raise UpdateError(f"Unknown response structure from {api}")
        return response

    def _check_api_error(self, status: int, body: Any):
        if not isinstance(body, dict) or body.get('success', True):
            return
        errors = body.get('errors') or []
        details = '; '.join(f"{e.get('code')}: {e.get('message')}"
                            for e in errors if isinstance(e, dict))
        message = f"Cloudflare API error: {details or 'unknown error'}"
        self.log.error("%s (HTTP %d)", message, status)
        codes = {e.get('code') for e in errors if isinstance(e, dict)}
        if status in (401, 403) or codes & set(_AUTH_ERROR_CODES):
            raise AuthenticationError(message)
        if status < 400:
            raise UpdateError(message)

    def _get_zone_id(self, domain: str) -> str:
        """Find the zone ID for a domain

        :raises NotFoundError: if the token cannot see such a zone
        """
        response = self._api_request('GET', '/zones', {'name': domain})
        try:
            zones = response['result']
            for zone in zones:
                if zone['name'].lower() == domain.lower():
                    return zone['id']
        except (KeyError, TypeError):
            self.log.error("Unknown response structure from /zones:\n%s",
                           pformat(response))
            raise UpdateError("Unknown response structure from /zones") \
                from None
        raise NotFoundError(f"No Cloudflare zone for domain {domain}")

    def _list_records(self, zone_id: str,
                      extra: Optional[Dict[str, str]] = None) -> List[Dict]:
        """Fetch raw DNS record dicts for a zone, following pagination"""
        api = f'/zones/{zone_id}/dns_records'
        result: List[Dict] = []
        page = 1
        while True:
            params: Dict[str, Any] = {'page': page, 'per_page': PAGE_SIZE}
            if extra:
                params.update(extra)
            response = self._api_request('GET', api, params)
            try:
                records = response['result'] or []
                total_pages = int((response.get('result_info') or {}).get(
                    'total_pages', 1))
            except (TypeError, ValueError):
                self.log.error("Unknown response structure from %s:\n%s",
                               api, pformat(response))
                raise UpdateError(f"Unknown response structure from {api}") \
                    from None
            result.extend(records)
            if not records or page >= total_pages:
                return result
            page += 1

    def get_records(self, domain: str) -> List[ObservedRecord]:
        zone_id = self._get_zone_id(domain)
        records = self._list_records(zone_id)
        try:
            return [ObservedRecord(self._to_relative(rec['name'], domain),
                                   rec['type'], rec['content'],
                                   int(rec.get('ttl') or 0))
                    for rec in records]
        except (KeyError, TypeError, ValueError):
            self.log.error("Unknown record structure:\n%s", pformat(records))
            raise UpdateError("Unknown record structure from Cloudflare") \
                from None

    def update_record(self, domain: str, name: str, rec_type: str, value: str,
                      ttl: int):
        zone_id = self._get_zone_id(domain)
        fqdn = self._to_fqdn(name, domain)
        candidates = self._list_records(zone_id,
                                        {'name': fqdn, 'type': rec_type})
        match = next((rec for rec in candidates
                      if rec.get('name', '').lower() == fqdn.lower() and
                      rec.get('type') == rec_type), None)
        data = {'type': rec_type, 'name': fqdn, 'content': value, 'ttl': ttl}
        if match is None:
            if not self.create_missing:
                raise RecordNotFoundError(f"No {rec_type} record {fqdn} in "
                                          f"Cloudflare zone {domain}")
            self.log.info("Creating %s record %s", rec_type, fqdn)
            self._api_request('POST', f'/zones/{zone_id}/dns_records',
                              data=data)
            return
        self._api_request('PUT',
                          f"/zones/{zone_id}/dns_records/{match['id']}",
                          data=data)
