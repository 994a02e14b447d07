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

"""IP Updater provider for Aliyun (Alibaba Cloud) DNS"""

import datetime
import uuid
from pprint import pformat
from typing import Any, Dict, List, Optional

from ..exceptions import (UpdateError, TransientNetworkError,
                          AuthenticationError, NotFoundError,
                          RecordNotFoundError)
from ..signing import aliyun_signature, percent_encode
from .provider import Provider, ObservedRecord


API_VERSION = '2015-01-09'
PAGE_SIZE = 500

_AUTH_CODES = ('InvalidAccessKeyId', 'SignatureDoesNotMatch',
               'IncompleteSignature', 'Forbidden', 'InvalidTimeStamp')
_NOT_FOUND_CODES = ('InvalidDomainName', 'DomainNotExist',
                    'IncorrectDomainUser')
_TRANSIENT_CODES = ('Throttling', 'ServiceUnavailable', 'InternalError')


class AliyunProvider(Provider):
    """IP Updater provider for Aliyun DNS (the ``alidns`` RPC API). Requests
    are signed with HMAC-SHA1 over the canonicalized query string.

    Missing records are created with ``AddDomainRecord`` by default.
    """

    provider_name = 'aliyun'
    supports_token = False
    create_missing = True
    default_endpoint = 'https://alidns.aliyuncs.com/'

    def _public_params(self) -> Dict[str, str]:
        """The common parameters every request carries"""
        now = datetime.datetime.now(datetime.timezone.utc)
        return {
            'Format': 'JSON',
            'Version': API_VERSION,
            'AccessKeyId': self.primary,
            'SignatureMethod': 'HMAC-SHA1',
            'Timestamp': now.strftime('%Y-%m-%dT%H:%M:%SZ'),
            'SignatureVersion': '1.0',
            'SignatureNonce': uuid.uuid4().hex,
        }

    def _api_request(self, method: str, action: str,
                     params: Dict[str, str]) -> Any:
        """Issue a signed RPC request.

        :param method: ``'GET'`` for reads, ``'POST'`` for writes
        :param action: The API action, e.g. ``'DescribeDomainRecords'``
        :param params: Action-specific parameters

        :return: The decoded JSON response
        """
        all_params = self._public_params()
        all_params['Action'] = action
        all_params.update(params)
        all_params['Signature'] = aliyun_signature(self.secondary, method,
                                                   all_params)
        # Encode by hand so the wire form matches what was signed
        encoded = '&'.join(f"{percent_encode(k)}={percent_encode(v)}"
                           for k, v in all_params.items())
        if method == 'GET':
            return self._request('GET', f"{self.endpoint}?{encoded}")
        return self._request(
            'POST', self.endpoint, data=encoded,
            headers={'Content-Type': 'application/x-www-form-urlencoded'}
        )

    def _check_api_error(self, status: int, body: Any):
        if not isinstance(body, dict):
            return
        code = body.get('Code')
        if not code or code == 'Success':
            return
        message = f"Aliyun API error: {code} - {body.get('Message', '')}"
        self.log.error("%s (HTTP %d)", message, status)
        if code.startswith(_AUTH_CODES):
            raise AuthenticationError(message)
        if code.startswith(_NOT_FOUND_CODES):
            raise NotFoundError(message)
        if code.startswith(_TRANSIENT_CODES) or status >= 500:
            raise TransientNetworkError(message)
        raise UpdateError(message)

    def _describe_records(self, domain: str,
                          extra: Optional[Dict[str, str]] = None
                          ) -> List[Dict]:
        """Fetch raw record dicts for a domain, following pagination"""
        result: List[Dict] = []
        page = 1
        while True:
            params = {'DomainName': domain, 'PageNumber': str(page),
                      'PageSize': str(PAGE_SIZE)}
            if extra:
                params.update(extra)
            response = self._api_request('GET', 'DescribeDomainRecords',
                                         params)
            try:
                records = (response.get('DomainRecords') or {}).get('Record',
                                                                     [])
                total = int(response.get('TotalCount', len(records)))
            except (AttributeError, TypeError, ValueError):
                self.log.error("Unknown response structure from "
                               "DescribeDomainRecords:\n%s", pformat(response))
                raise UpdateError("Unknown response structure from "
                                  "DescribeDomainRecords") from None
            result.extend(records)
            if not records or len(result) >= total:
                return result
            page += 1

    def get_records(self, domain: str) -> List[ObservedRecord]:
        records = self._describe_records(domain)
        try:
            return [ObservedRecord(rec['RR'], rec['Type'], rec['Value'],
                                   int(rec.get('TTL', 0)))
                    for rec in records]
        except (KeyError, TypeError, ValueError):
            self.log.error("Unknown record structure from "
                           "DescribeDomainRecords:\n%s", pformat(records))
            raise UpdateError("Unknown record structure from "
                              "DescribeDomainRecords") from None

    def update_record(self, domain: str, name: str, rec_type: str, value: str,
                      ttl: int):
        # RRKeyWord is a fuzzy match, so filter for an exact match here
        candidates = self._describe_records(
            domain, {'RRKeyWord': name, 'Type': rec_type}
        )
        match = next((rec for rec in candidates
                      if rec.get('RR') == name and
                      rec.get('Type') == rec_type),
                     None)
        params = {'RR': name, 'Type': rec_type, 'Value': value,
                  'TTL': str(ttl)}
        if match is None:
            if not self.create_missing:
                raise RecordNotFoundError(f"No {rec_type} record {name} in "
                                          f"Aliyun domain {domain}")
            self.log.info("Creating %s record %s in %s", rec_type, name,
                          domain)
            params['DomainName'] = domain
            self._api_request('POST', 'AddDomainRecord', params)
            return
        params['RecordId'] = str(match['RecordId'])
        self._api_request('POST', 'UpdateDomainRecord', params)
