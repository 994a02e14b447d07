import errno
import io
import textwrap

import pytest

import ipupdater
import ipupdater.configuration


class BrokenFile:
    def read(self, *args):
        raise OSError(errno.ETIMEDOUT, "timeout")


@pytest.fixture
def configfile_factory(tmp_path):
    """Fixture creating a factory for temporary config files"""
    def factory(contents):
        path = tmp_path / 'ipupdater.toml'
        path.write_text(textwrap.dedent(contents))
        return path
    return factory


@pytest.fixture
def config_factory(configfile_factory):
    def factory(contents, decrypt=None):
        return ipupdater.configuration.read_config_from_path(
            configfile_factory(contents), decrypt
        )
    return factory


FULL_CONFIG = """
    check_interval = 300

    [ip_detection]
    api_endpoints = ["https://ip.example/api"]
    web_endpoints = ["https://ip.example/web"]
    timeout = 10

    [retry]
    interval = 5
    max_retries = 3

    [logging]
    level = "DEBUG"
    file_path = "stderr"
    max_size = 10
    max_age = 7

    [[dns_updater]]
    name = "home"
    provider = "Cloudflare"
    domain = "example.com"
    token = "cf-token"

    [[dns_updater.record]]
    name = "@"

    [[dns_updater.record]]
    name = "vpn"
    type = "aaaa"
    ttl = 120

    [[file_updater]]
    name = "wireguard"
    file_path = "/etc/wg.json"
    format = "JSON"
    key_path = "peer/endpoint"
    backup = true
"""


def test_nonexistent_file(tmp_path):
    """Test opening a nonexistent path raises ConfigError"""
    with pytest.raises(ipupdater.ConfigError):
        ipupdater.configuration.read_config_from_path(
            tmp_path / 'nonexistent_config.toml'
        )


def test_read_config_read_error():
    """Test read error for read_config"""
    with pytest.raises(OSError):
        ipupdater.configuration.read_config(BrokenFile())


def test_read_config_from_path_read_error(mocker, configfile_factory):
    """Test read error for read_config_from_path"""
    path = configfile_factory("")
    mocker.patch('ipupdater.configuration.tomllib.load',
                 side_effect=OSError(errno.EIO, "I/O error"))

    with pytest.raises(ipupdater.ConfigError):
        ipupdater.configuration.read_config_from_path(path)


def test_read_config_from_file_object():
    """Test reading from an already open binary file"""
    config = ipupdater.configuration.read_config(
        io.BytesIO(b"check_interval = 42\n"))
    assert config.check_interval == 42


def test_invalid_toml(config_factory):
    """Test a syntax error raises ConfigError"""
    with pytest.raises(ipupdater.ConfigError):
        config_factory("check_interval = \n")


def test_full_config(config_factory):
    """Test that every option is read into the configuration"""
    config = config_factory(FULL_CONFIG)

    assert config.check_interval == 300
    assert config.api_endpoints == ["https://ip.example/api"]
    assert config.web_endpoints == ["https://ip.example/web"]
    assert config.detection_timeout == 10
    assert config.retry == ipupdater.RetryPolicy(5, 3)
    assert config.log_level == 'debug'
    assert config.log_file == 'stderr'
    assert config.log_max_size == 10
    assert config.log_max_age == 7

    assert config.dns_targets == [ipupdater.DNSTarget(
        'home', 'cloudflare', ipupdater.Credentials('', '', 'cf-token'),
        'example.com', (
            ipupdater.DesiredRecord('@', 'A', 600),
            ipupdater.DesiredRecord('vpn', 'AAAA', 120),
        )
    )]
    assert config.file_targets == [ipupdater.FileTarget(
        'wireguard', '/etc/wg.json', 'json', 'peer/endpoint', True
    )]


def test_defaults(config_factory):
    """Test the defaults of an empty configuration"""
    config = config_factory("")

    assert config.check_interval == 600
    assert config.api_endpoints == \
        ipupdater.configuration.DEFAULT_API_ENDPOINTS
    assert config.web_endpoints == \
        ipupdater.configuration.DEFAULT_WEB_ENDPOINTS
    assert config.detection_timeout == 30
    assert config.retry == ipupdater.RetryPolicy(60, -1)
    assert config.log_level == 'info'
    assert config.log_file == '/var/log/ip_updater/ip_updater.log'
    assert config.log_max_size == 100
    assert config.log_max_age == 30
    assert config.dns_targets == []
    assert config.file_targets == []


def test_empty_endpoint_list_uses_default(config_factory):
    """Test an empty endpoint list falls back to the defaults"""
    config = config_factory("""
        [ip_detection]
        api_endpoints = []
    """)
    assert config.api_endpoints == \
        ipupdater.configuration.DEFAULT_API_ENDPOINTS


def test_file_backup_default(config_factory):
    """Test backups are off unless asked for"""
    config = config_factory("""
        [[file_updater]]
        name = "f"
        file_path = "/tmp/f.yaml"
        format = "yml"
        key_path = "ip"
    """)
    assert config.file_targets[0].backup is False
    assert config.file_targets[0].format == 'yml'


def test_key_pair_credentials(config_factory):
    """Test an access key and secret key are accepted without a token"""
    config = config_factory("""
        [[dns_updater]]
        name = "ali"
        provider = "aliyun"
        domain = "example.com"
        access_key = "LTAIxxxx"
        secret_key = "s3cret"
        [[dns_updater.record]]
        name = "www"
    """)
    assert config.dns_targets[0].credentials == \
        ipupdater.Credentials('LTAIxxxx', 's3cret', '')


def test_decrypt_applied(config_factory):
    """Test the decrypt hook is applied to each non-empty credential"""
    config = config_factory("""
        [[dns_updater]]
        name = "ali"
        provider = "aliyun"
        domain = "example.com"
        access_key = "enc:id"
        secret_key = "enc:secret"
        [[dns_updater.record]]
        name = "www"
    """, decrypt=lambda value: value[len('enc:'):])
    assert config.dns_targets[0].credentials == \
        ipupdater.Credentials('id', 'secret', '')


def test_decrypt_failure(config_factory):
    """Test a failing decrypt hook raises ConfigError"""
    def decrypt(value):
        raise ValueError("bad padding")

    with pytest.raises(ipupdater.ConfigError):
        config_factory("""
            [[dns_updater]]
            name = "cf"
            provider = "cloudflare"
            domain = "example.com"
            token = "garbage"
            [[dns_updater.record]]
            name = "@"
        """, decrypt=decrypt)


@pytest.mark.parametrize('contents', [
    # Negative interval
    "check_interval = -5\n",
    # Not a number
    "check_interval = \"often\"\n",
    # Zero retries
    "[retry]\nmax_retries = 0\n",
    # Fractional retries
    "[retry]\nmax_retries = 2.5\n",
    # Below -1
    "[retry]\nmax_retries = -2\n",
    # Unknown log level
    "[logging]\nlevel = \"loud\"\n",
    # Endpoints not strings
    "[ip_detection]\napi_endpoints = [1, 2]\n",
    # Table expected
    "retry = 5\n",
])
def test_invalid_options(config_factory, contents):
    """Test invalid global options raise ConfigError"""
    with pytest.raises(ipupdater.ConfigError):
        config_factory(contents)


DNS_TARGET = """
    [[dns_updater]]
    name = "home"
    provider = "cloudflare"
    domain = "example.com"
    token = "t"
"""


@pytest.mark.parametrize('contents', [
    # No records
    DNS_TARGET,
    # Record without name
    DNS_TARGET + "[[dns_updater.record]]\ntype = \"A\"\n",
    # Duplicate record
    DNS_TARGET + "[[dns_updater.record]]\nname = \"@\"\n"
                 "[[dns_updater.record]]\nname = \"@\"\ntype = \"a\"\n",
    # Zero TTL
    DNS_TARGET + "[[dns_updater.record]]\nname = \"@\"\nttl = 0\n",
    # No credentials
    """
    [[dns_updater]]
    name = "home"
    provider = "aliyun"
    domain = "example.com"
    access_key = "only-half"
    [[dns_updater.record]]
    name = "@"
    """,
    # No domain
    """
    [[dns_updater]]
    name = "home"
    provider = "cloudflare"
    token = "t"
    [[dns_updater.record]]
    name = "@"
    """,
    # Duplicate target names
    DNS_TARGET + "[[dns_updater.record]]\nname = \"@\"\n" +
    DNS_TARGET + "[[dns_updater.record]]\nname = \"www\"\n",
])
def test_invalid_dns_targets(config_factory, contents):
    """Test invalid DNS targets raise ConfigError"""
    with pytest.raises(ipupdater.ConfigError):
        config_factory(contents)


@pytest.mark.parametrize('options', [
    # Unsupported format
    'file_path = "/f"\nformat = "xml"\nkey_path = "a"\n',
    # Empty key path
    'file_path = "/f"\nformat = "json"\nkey_path = "//"\n',
    # Backup not a boolean
    'file_path = "/f"\nformat = "json"\nkey_path = "a"\nbackup = "yes"\n',
    # Missing file path
    'format = "json"\nkey_path = "a"\n',
])
def test_invalid_file_targets(config_factory, options):
    """Test invalid file targets raise ConfigError"""
    with pytest.raises(ipupdater.ConfigError):
        config_factory('[[file_updater]]\nname = "f"\n' + options)
