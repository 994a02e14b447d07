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

import pytest

import doubles
import ipupdater
from ipupdater.dnssync import DNSSyncManager


@pytest.fixture
def fake_http(mocker):
    """Fixture patching :func:`requests.request` and :func:`requests.get` with
    a :class:`~doubles.FakeHTTP`"""
    http = doubles.FakeHTTP()
    mocker.patch('requests.request', side_effect=http.request)
    mocker.patch('requests.get', side_effect=http.get)
    return http


@pytest.fixture
def fake_provider():
    """Fixture providing a :class:`~doubles.FakeProvider` with an apex and a
    www A record, both at 192.0.2.1"""
    return doubles.FakeProvider([
        ('@', 'A', '192.0.2.1'),
        ('www', 'A', '192.0.2.1'),
    ])


@pytest.fixture
def dns_manager(fake_provider):
    """Fixture providing a :class:`~ipupdater.DNSSyncManager` with only the
    fake provider registered"""
    manager = DNSSyncManager()
    manager.register_provider('fake', fake_provider)
    return manager


@pytest.fixture
def dns_target_factory():
    """Fixture creating a factory for DNS targets"""
    def factory(records=(('@', 'A'), ('www', 'A')), provider='fake',
                name='home', credentials=None):
        if credentials is None:
            credentials = ipupdater.Credentials('key_id', 'key_secret')
        return ipupdater.DNSTarget(
            name, provider, credentials, 'example.com',
            tuple(ipupdater.DesiredRecord(n, t, 300) for n, t in records)
        )
    return factory


@pytest.fixture
def file_factory(tmp_path):
    """Fixture creating a factory for files and file targets under
    ``tmp_path``"""
    def factory(contents, fmt='json', key_path='server/public_ip',
                backup=True, filename=None):
        path = tmp_path / (filename or f'cfg.{fmt}')
        path.write_text(contents)
        target = ipupdater.FileTarget(path.stem, str(path), fmt, key_path,
                                      backup)
        return path, target
    return factory
