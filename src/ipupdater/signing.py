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

"""Request signing for the DNS provider APIs

Every function here is pure: the same inputs always give the same output, so
signatures can be checked without touching the network. Timestamps are always
passed in by the caller.
"""

import base64
import datetime
import hashlib
import hmac
from typing import Dict, Mapping
from urllib.parse import quote


TENCENT_ALGORITHM = 'TC3-HMAC-SHA256'
TENCENT_SIGNED_HEADERS = 'content-type;host'

HUAWEI_ALGORITHM = 'SDK-HMAC-SHA256'
HUAWEI_CONTENT_TYPE = 'application/json'
HUAWEI_SIGNED_HEADERS = 'content-type;host;x-sdk-date'


def percent_encode(value: str) -> str:
    """Percent-encode a string per RFC 3986: only ``A-Z a-z 0-9 - _ . ~`` are
    left alone and spaces become ``%20``"""
    return quote(value, safe='~')


def sha256_hex(data: str) -> str:
    """Hex SHA-256 digest of a UTF-8 string"""
    return hashlib.sha256(data.encode('utf-8')).hexdigest()


def hmac_sha256(key: bytes, data: str) -> bytes:
    """Raw HMAC-SHA256 of a UTF-8 string"""
    return hmac.new(key, data.encode('utf-8'), hashlib.sha256).digest()


# Aliyun: HMAC-SHA1 over the sorted, escaped query string

def aliyun_canonical_query(params: Mapping[str, str]) -> str:
    """Build the canonicalized query string for an Aliyun RPC request. Keys
    are sorted and both keys and values are percent-encoded. Any
    ``Signature`` parameter is left out.

    :param params: All request parameters, public and action-specific
    :return: The canonicalized query string
    """
    return '&'.join(
        f"{percent_encode(key)}={percent_encode(params[key])}"
        for key in sorted(params) if key != 'Signature'
    )


def aliyun_string_to_sign(method: str, params: Mapping[str, str]) -> str:
    """Build the Aliyun string to sign:
    ``METHOD&%2F&<encoded canonical query>``"""
    return '&'.join((method.upper(), percent_encode('/'),
                     percent_encode(aliyun_canonical_query(params))))


def aliyun_signature(secret_key: str, method: str,
                     params: Mapping[str, str]) -> str:
    """Compute the ``Signature`` parameter for an Aliyun RPC request

    :param secret_key: The AccessKey secret
    :param method: HTTP method, ``'GET'`` or ``'POST'``
    :param params: Request parameters (``Signature`` itself is ignored)
    :return: The base64-encoded HMAC-SHA1 signature
    """
    digest = hmac.new((secret_key + '&').encode('utf-8'),
                      aliyun_string_to_sign(method, params).encode('utf-8'),
                      hashlib.sha1).digest()
    return base64.b64encode(digest).decode('ascii')


# Tencent Cloud: TC3-HMAC-SHA256

def tencent_canonical_request(host: str, payload: str,
                              content_type: str) -> str:
    """Build the TC3 canonical request for a POST to ``/`` with no query
    string"""
    canonical_headers = f"content-type:{content_type}\nhost:{host}\n"
    return '\n'.join(('POST', '/', '', canonical_headers,
                      TENCENT_SIGNED_HEADERS, sha256_hex(payload)))


def tencent_authorization(secret_id: str, secret_key: str, host: str,
                          service: str, payload: str, timestamp: int,
                          content_type: str) -> str:
    """Compute the ``Authorization`` header for a Tencent Cloud API 3.0
    request

    The signing key is derived in three stages, each an HMAC-SHA256 keyed by
    the previous one: the UTC date of the request, then the service name, then
    the literal ``tc3_request``.

    :param secret_id: The SecretId
    :param secret_key: The SecretKey
    :param host: API host, e.g. ``dnspod.tencentcloudapi.com``
    :param service: Service name, e.g. ``dnspod``
    :param payload: The exact request body
    :param timestamp: Unix timestamp sent as ``X-TC-Timestamp``
    :param content_type: The exact ``Content-Type`` header sent
    :return: The header value
    """
    date = datetime.datetime.fromtimestamp(
        timestamp, tz=datetime.timezone.utc).strftime('%Y-%m-%d')
    credential_scope = f"{date}/{service}/tc3_request"
    canonical_request = tencent_canonical_request(host, payload, content_type)
    string_to_sign = '\n'.join((TENCENT_ALGORITHM, str(timestamp),
                                credential_scope,
                                sha256_hex(canonical_request)))

    secret_date = hmac_sha256(('TC3' + secret_key).encode('utf-8'), date)
    secret_service = hmac_sha256(secret_date, service)
    secret_signing = hmac_sha256(secret_service, 'tc3_request')
    signature = hmac.new(secret_signing, string_to_sign.encode('utf-8'),
                         hashlib.sha256).hexdigest()

    return (f"{TENCENT_ALGORITHM} Credential={secret_id}/{credential_scope}, "
            f"SignedHeaders={TENCENT_SIGNED_HEADERS}, Signature={signature}")


# Huawei Cloud: SDK-HMAC-SHA256

def huawei_canonical_query(query: Mapping[str, str]) -> str:
    """Sorted, percent-encoded query string for a Huawei canonical request"""
    return '&'.join(f"{percent_encode(key)}={percent_encode(query[key])}"
                    for key in sorted(query))


def huawei_canonical_request(method: str, path: str, query: Mapping[str, str],
                             host: str, timestamp: str, payload: str) -> str:
    """Build the canonical request signed by the Huawei APIG signer. The
    canonical URI always carries a trailing slash, even though the request
    itself is sent without one."""
    canonical_uri = path if path.endswith('/') else path + '/'
    canonical_headers = (f"content-type:{HUAWEI_CONTENT_TYPE}\n"
                         f"host:{host}\n"
                         f"x-sdk-date:{timestamp}\n")
    return '\n'.join((method.upper(), canonical_uri,
                      huawei_canonical_query(query), canonical_headers,
                      HUAWEI_SIGNED_HEADERS, sha256_hex(payload)))


def huawei_authorization(access_key: str, secret_key: str, method: str,
                         path: str, query: Mapping[str, str], host: str,
                         timestamp: str, payload: str) -> str:
    """Compute the ``Authorization`` header for a Huawei Cloud request

    :param access_key: The AK
    :param secret_key: The SK
    :param method: HTTP method
    :param path: Request path, e.g. ``/v2/zones``
    :param query: Query parameters
    :param host: API host, e.g. ``dns.myhuaweicloud.com``
    :param timestamp: The ``X-Sdk-Date`` value, ``YYYYMMDDTHHMMSSZ``
    :param payload: The exact request body (empty string for none)
    :return: The header value
    """
    canonical_request = huawei_canonical_request(method, path, query, host,
                                                 timestamp, payload)
    string_to_sign = '\n'.join((HUAWEI_ALGORITHM, timestamp,
                                sha256_hex(canonical_request)))
    signature = hmac_sha256(secret_key.encode('utf-8'),
                            string_to_sign).hex()
    return (f"{HUAWEI_ALGORITHM} Access={access_key}, "
            f"SignedHeaders={HUAWEI_SIGNED_HEADERS}, Signature={signature}")


# Header-only schemes

def cloudflare_headers(token: str) -> Dict[str, str]:
    """Authorization header for a Cloudflare API token"""
    return {'Authorization': f"Bearer {token}"}


def godaddy_headers(api_key: str, api_secret: str) -> Dict[str, str]:
    """Authorization header for a GoDaddy key/secret pair"""
    return {'Authorization': f"sso-key {api_key}:{api_secret}"}


def mask_credential(credential: str) -> str:
    """Return a form of a credential that is safe to write to logs"""
    if len(credential) <= 8:
        if len(credential) < 2:
            return '***'
        return '***' + credential[-2:]
    return credential[:4] + '***' + credential[-4:]
