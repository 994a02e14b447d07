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

"""IP Updater provider for Huawei Cloud DNS"""

import datetime
import json
from pprint import pformat
from typing import Any, Dict, List, Optional
from urllib.parse import urlsplit

from ..exceptions import (UpdateError, AuthenticationError, NotFoundError,
                          RecordNotFoundError)
from ..signing import (huawei_authorization, huawei_canonical_query,
                       HUAWEI_CONTENT_TYPE)
from .provider import Provider, ObservedRecord


PAGE_SIZE = 500


class HuaweiProvider(Provider):
    """IP Updater provider for Huawei Cloud DNS (``/v2`` REST API). Requests
    are signed with the APIG ``SDK-HMAC-SHA256`` scheme using an AK/SK pair.

    Huawei works with record sets. Each record set holds a list of values;
    only the first value of each is reported, and updates replace the whole
    list with the single new value.

    Missing record sets are reported rather than created unless
    ``create_missing`` is enabled.
    """

    provider_name = 'huawei'
    supports_token = False
    create_missing = False
    default_endpoint = 'https://dns.myhuaweicloud.com'

    def _api_request(self, method: str, path: str,
                     query: Optional[Dict[str, str]] = None,
                     data: Any = None) -> Any:
        """Issue a signed API request.

        :param method: HTTP method
        :param path: API path, e.g. ``'/v2/zones'``
        :param query: URL parameters
        :param data: A JSON-serializable object to become the request body

        :return: The decoded JSON response
        """
        query = query or {}
        payload = '' if data is None else json.dumps(data)
        host = urlsplit(self.endpoint).netloc
        timestamp = datetime.datetime.now(
            datetime.timezone.utc).strftime('%Y%m%dT%H%M%SZ')
        headers = {
            'Authorization': huawei_authorization(
                self.primary, self.secondary, method, path, query, host,
                timestamp, payload
            ),
            'Content-Type': HUAWEI_CONTENT_TYPE,
            'Host': host,
            'X-Sdk-Date': timestamp,
        }
        url = self.endpoint + path
        if query:
            # Encode by hand so the wire form matches what was signed
            url += '?' + huawei_canonical_query(query)
        return self._request(method, url, data=payload or None,
                             headers=headers)

    def _check_api_error(self, status: int, body: Any):
        if status < 400 or not isinstance(body, dict):
            return
        code = body.get('code') or body.get('error_code') or ''
        message = body.get('message') or body.get('error_msg') or ''
        if not code:
            return
        message = f"Huawei API error: {code} - {message}"
        self.log.error("%s (HTTP %d)", message, status)
        if code.startswith('APIGW.0301') or status in (401, 403):
            raise AuthenticationError(message)
        if status == 404:
            raise NotFoundError(message)

    def _get_zone_id(self, domain: str) -> str:
        """Find the ID of the public zone for a domain

        :raises NotFoundError: if the account has no such zone
        """
        response = self._api_request('GET', '/v2/zones',
                                     {'name': domain + '.'})
        try:
            zones = response['zones']
            for zone in zones:
                if zone['name'].rstrip('.').lower() == domain.lower():
                    return zone['id']
        except (KeyError, TypeError):
            self.log.error("Unknown response structure from /v2/zones:\n%s",
                           pformat(response))
            raise UpdateError("Unknown response structure from /v2/zones") \
                from None
        raise NotFoundError(f"No Huawei DNS zone for domain {domain}")

    def _list_recordsets(self, zone_id: str,
                         extra: Optional[Dict[str, str]] = None) -> List[Dict]:
        """Fetch raw record set dicts for a zone, following pagination"""
        path = f'/v2/zones/{zone_id}/recordsets'
        result: List[Dict] = []
        while True:
            query = {'limit': str(PAGE_SIZE), 'offset': str(len(result))}
            if extra:
                query.update(extra)
            response = self._api_request('GET', path, query)
            try:
                recordsets = response.get('recordsets') or []
                total = int((response.get('metadata') or {}).get(
                    'total_count', len(recordsets)))
            except (AttributeError, TypeError, ValueError):
                self.log.error("Unknown response structure from %s:\n%s",
                               path, pformat(response))
                raise UpdateError(f"Unknown response structure from {path}") \
                    from None
            result.extend(recordsets)
            if not recordsets or len(result) >= total:
                return result

    def get_records(self, domain: str) -> List[ObservedRecord]:
        zone_id = self._get_zone_id(domain)
        recordsets = self._list_recordsets(zone_id)
        result = []
        try:
            for rs in recordsets:
                values = rs.get('records') or []
                if not values:
                    continue
                result.append(ObservedRecord(
                    self._to_relative(rs['name'], domain), rs['type'],
                    values[0], int(rs.get('ttl') or 0)
                ))
        except (KeyError, TypeError, ValueError):
            self.log.error("Unknown record set structure:\n%s",
                           pformat(recordsets))
            raise UpdateError("Unknown record set structure from Huawei") \
                from None
        return result

    def update_record(self, domain: str, name: str, rec_type: str, value: str,
                      ttl: int):
        zone_id = self._get_zone_id(domain)
        fqdn = self._to_fqdn(name, domain) + '.'
        candidates = self._list_recordsets(zone_id,
                                           {'name': fqdn, 'type': rec_type})
        match = next((rs for rs in candidates
                      if rs.get('name', '').lower() == fqdn.lower() and
                      rs.get('type') == rec_type), None)
        if match is None:
            if not self.create_missing:
                raise RecordNotFoundError(f"No {rec_type} record set {fqdn} "
                                          f"in Huawei zone {domain}")
            self.log.info("Creating %s record set %s", rec_type, fqdn)
            self._api_request('POST', f'/v2/zones/{zone_id}/recordsets',
                              data={'name': fqdn, 'type': rec_type,
                                    'records': [value], 'ttl': ttl})
            return
        self._api_request('PUT',
                          f"/v2/zones/{zone_id}/recordsets/{match['id']}",
                          data={'records': [value], 'ttl': ttl})
