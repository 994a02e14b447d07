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

"""Detects the public IPv4 address using what-is-my-ip-style websites"""

import ipaddress
import logging
from typing import List, Optional

import requests

from .configuration import (USER_AGENT, DEFAULT_API_ENDPOINTS,
                            DEFAULT_WEB_ENDPOINTS, DEFAULT_DETECTION_TIMEOUT)
from .exceptions import DetectError


class IPDetector:
    """Looks up the public IPv4 address. API endpoints are tried first, in
    order, then web endpoints. The first endpoint to answer with a valid
    address wins.

    :param api_endpoints: URLs that answer with the bare address
    :param web_endpoints: Fallback URLs
    :param timeout: Timeout for each request, in seconds
    """

    def __init__(self, api_endpoints: Optional[List[str]] = None,
                 web_endpoints: Optional[List[str]] = None,
                 timeout: float = DEFAULT_DETECTION_TIMEOUT):
        self.log = logging.getLogger('ipupdater.detector')
        self.api_endpoints = (list(DEFAULT_API_ENDPOINTS)
                              if api_endpoints is None else api_endpoints)
        self.web_endpoints = (list(DEFAULT_WEB_ENDPOINTS)
                              if web_endpoints is None else web_endpoints)
        self.timeout = timeout

    def _query(self, url: str) -> Optional[str]:
        """Ask one endpoint for the address

        :return: The address, or ``None`` if this endpoint did not give one
                 (which will be logged)
        """
        try:
            r = requests.get(url, timeout=self.timeout,
                             headers={'User-Agent': USER_AGENT})
        except requests.exceptions.RequestException as e:
            self.log.warning("Could not get IP from %s: %s", url, e)
            return None
        try:
            r.raise_for_status()
        except requests.exceptions.HTTPError:
            self.log.warning("Received HTTP %d from %s: %s", r.status_code,
                             url, r.text)
            return None
        text = r.text.strip()
        try:
            return str(ipaddress.IPv4Address(text))
        except ValueError:
            self.log.warning('Response from %s did not contain a valid IPv4 '
                             'address: "%s"', url, text)
            return None

    def get_public_ip(self) -> str:
        """Get the current public IPv4 address

        :raises DetectError: if no endpoint gave a valid address
        """
        for url in self.api_endpoints + self.web_endpoints:
            ip = self._query(url)
            if ip is not None:
                self.log.debug("Got IP %s from %s", ip, url)
                return ip
        raise DetectError("Could not determine the public IP address from "
                          "any endpoint")


class StaticDetector:
    """Stands in for :class:`IPDetector` when the IP is given rather than
    detected

    :param ip: The IP address to report
    """

    def __init__(self, ip: str):
        self.ip = ip

    def get_public_ip(self) -> str:
        return self.ip
