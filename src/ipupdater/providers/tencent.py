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

"""IP Updater provider for Tencent Cloud DNSPod (API 3.0)"""

import json
import time
from pprint import pformat
from typing import Any, Dict, List
from urllib.parse import urlsplit

from ..exceptions import (UpdateError, TransientNetworkError,
                          AuthenticationError, NotFoundError,
                          RecordNotFoundError)
from ..signing import tencent_authorization
from .provider import Provider, ObservedRecord


SERVICE = 'dnspod'
API_VERSION = '2021-03-23'
REGION = 'ap-beijing'
CONTENT_TYPE = 'application/json; charset=utf-8'
#: The record line every record is published on
DEFAULT_LINE = '默认'
PAGE_SIZE = 3000

#: Error code meaning the domain simply has no (matching) records
NO_RECORDS_CODE = 'ResourceNotFound.NoDataOfRecord'


class _NoRecords(Exception):
    """Internal signal that a record listing came back empty"""


class TencentProvider(Provider):
    """IP Updater provider for Tencent Cloud DNSPod. Requests are JSON POSTs
    to the API root, signed with TC3-HMAC-SHA256.

    Missing records are reported rather than created unless
    ``create_missing`` is enabled, in which case ``CreateRecord`` is used.
    """

    provider_name = 'tencent'
    supports_token = False
    create_missing = False
    default_endpoint = 'https://dnspod.tencentcloudapi.com'

    def _api_request(self, action: str, params: Dict[str, Any]) -> Dict:
        """Issue a signed API request.

        :param action: The API action, e.g. ``'DescribeRecordList'``
        :param params: Action parameters, sent as the JSON body

        :return: The ``Response`` object from the reply
        """
        payload = json.dumps(params, ensure_ascii=False, separators=(',', ':'))
        host = urlsplit(self.endpoint).netloc
        timestamp = int(time.time())
        headers = {
            'Authorization': tencent_authorization(
                self.primary, self.secondary, host, SERVICE, payload,
                timestamp, CONTENT_TYPE
            ),
            'Content-Type': CONTENT_TYPE,
            'Host': host,
            'X-TC-Action': action,
            'X-TC-Version': API_VERSION,
            'X-TC-Region': REGION,
            'X-TC-Timestamp': str(timestamp),
        }
        response = self._request('POST', self.endpoint,
                                 data=payload.encode('utf-8'),
                                 headers=headers)
        try:
            return response['Response']
        except (KeyError, TypeError):
            self.log.error("Unknown response structure from %s:\n%s", action,
                           pformat(response))
            raise UpdateError(f"Unknown response structure from {action}") \
                from None

    def _check_api_error(self, status: int, body: Any):
        try:
            error = body['Response']['Error']
        except (KeyError, TypeError):
            return
        code = error.get('Code', '')
        if code == NO_RECORDS_CODE:
            raise _NoRecords()
        message = f"Tencent API error: {code} - {error.get('Message', '')}"
        self.log.error(message)
        if code.startswith(('AuthFailure', 'UnauthorizedOperation')):
            raise AuthenticationError(message)
        if (code.startswith('ResourceNotFound') or
                code in ('InvalidParameterValue.DomainNotExists',
                         'InvalidParameter.DomainInvalid')):
            raise NotFoundError(message)
        if code.startswith(('RequestLimitExceeded', 'InternalError',
                            'ResourceUnavailable')):
            raise TransientNetworkError(message)
        raise UpdateError(message)

    def _list_records(self, domain: str, **filters) -> List[Dict]:
        """Fetch raw record dicts for a domain, following pagination. An
        empty listing is not an error."""
        result: List[Dict] = []
        while True:
            params: Dict[str, Any] = {'Domain': domain,
                                      'Offset': len(result),
                                      'Limit': PAGE_SIZE}
            params.update(filters)
            try:
                response = self._api_request('DescribeRecordList', params)
            except _NoRecords:
                return result
            try:
                records = response.get('RecordList') or []
                total = int(response.get('RecordCountInfo', {}).get(
                    'TotalCount', len(records)))
            except (AttributeError, TypeError, ValueError):
                self.log.error("Unknown response structure from "
                               "DescribeRecordList:\n%s", pformat(response))
                raise UpdateError("Unknown response structure from "
                                  "DescribeRecordList") from None
            result.extend(records)
            if not records or len(result) >= total:
                return result

    def get_records(self, domain: str) -> List[ObservedRecord]:
        records = self._list_records(domain)
        try:
            return [ObservedRecord(rec['Name'], rec['Type'], rec['Value'],
                                   int(rec.get('TTL', 0)))
                    for rec in records]
        except (KeyError, TypeError, ValueError):
            self.log.error("Unknown record structure from "
                           "DescribeRecordList:\n%s", pformat(records))
            raise UpdateError("Unknown record structure from "
                              "DescribeRecordList") from None

    def update_record(self, domain: str, name: str, rec_type: str, value: str,
                      ttl: int):
        candidates = self._list_records(domain, Subdomain=name,
                                        RecordType=rec_type)
        match = next((rec for rec in candidates
                      if rec.get('Name') == name and
                      rec.get('Type') == rec_type),
                     None)
        params: Dict[str, Any] = {
            'Domain': domain,
            'SubDomain': name,
            'RecordType': rec_type,
            'RecordLine': DEFAULT_LINE,
            'Value': value,
            'TTL': ttl,
        }
        if match is None:
            if not self.create_missing:
                raise RecordNotFoundError(f"No {rec_type} record {name} in "
                                          f"Tencent domain {domain}")
            self.log.info("Creating %s record %s in %s", rec_type, name,
                          domain)
            self._api_request('CreateRecord', params)
            return
        params['RecordId'] = int(match['RecordId'])
        self._api_request('ModifyRecord', params)
