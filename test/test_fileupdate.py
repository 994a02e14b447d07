import errno
import json
import os
import stat

import pytest

import ipupdater
from ipupdater import fileupdate
from ipupdater.fileupdate import FileUpdater


class TestMergeIPWithMask:
    def test_no_mask(self):
        """Test a plain value is replaced outright"""
        assert fileupdate.merge_ip_with_mask('1.2.3.3', '1.2.3.4') == \
            '1.2.3.4'

    def test_mask_kept(self):
        """Test a CIDR mask on the current value is carried over"""
        assert fileupdate.merge_ip_with_mask('10.0.0.1/24', '10.0.0.2') == \
            '10.0.0.2/24'

    def test_ipv6_mask_kept(self):
        """Test a mask is kept on IPv6 values too"""
        assert fileupdate.merge_ip_with_mask('2001:db8::1/64',
                                             '2001:db8::2') == '2001:db8::2/64'

    def test_invalid_current_still_merged(self, caplog):
        """Test a malformed current value is warned about, not fatal"""
        result = fileupdate.merge_ip_with_mask('not-an-ip', '1.2.3.4')
        assert result == '1.2.3.4'
        assert "not a valid IP address" in caplog.text


def test_validate_ip():
    """Test validate_ip accepts addresses and rejects anything else"""
    fileupdate.validate_ip('192.0.2.1')
    fileupdate.validate_ip('2001:db8::1')
    with pytest.raises(ipupdater.ValidationWarning):
        fileupdate.validate_ip('192.0.2.1/24')


class TestAtomicWrite:
    def test_replaces_contents(self, tmp_path):
        """Test the file ends up with exactly the new contents"""
        path = tmp_path / 'f.txt'
        path.write_bytes(b'old')
        fileupdate.atomic_write(str(path), b'new')
        assert path.read_bytes() == b'new'
        assert os.listdir(tmp_path) == ['f.txt']

    def test_creates_missing_file(self, tmp_path):
        """Test a file that does not exist yet is created"""
        path = tmp_path / 'new.txt'
        fileupdate.atomic_write(str(path), b'data')
        assert path.read_bytes() == b'data'

    def test_mode_preserved(self, tmp_path):
        """Test the permission bits of the original are kept"""
        path = tmp_path / 'f.txt'
        path.write_bytes(b'old')
        path.chmod(0o640)
        fileupdate.atomic_write(str(path), b'new')
        assert stat.S_IMODE(path.stat().st_mode) == 0o640

    def test_failure_leaves_original(self, mocker, tmp_path):
        """Test a failed rename leaves the original and no temporary file"""
        path = tmp_path / 'f.txt'
        path.write_bytes(b'old')
        mocker.patch('os.replace', side_effect=OSError(errno.EIO, "I/O"))
        with pytest.raises(OSError):
            fileupdate.atomic_write(str(path), b'new')
        assert path.read_bytes() == b'old'
        assert os.listdir(tmp_path) == ['f.txt']


JSON_DOC = '{"server": {"public_ip": "1.2.3.3", "port": 80}}'


class TestFileUpdater:
    def test_json_update_with_backup(self, file_factory):
        """Test the value is replaced, other data kept, and the backup holds
        the original bytes"""
        path, target = file_factory(JSON_DOC)

        assert FileUpdater(target).update_ip('1.2.3.4')

        data = json.loads(path.read_text())
        assert data == {'server': {'public_ip': '1.2.3.4', 'port': 80}}
        backup = path.parent / (path.name + '.backup')
        assert backup.read_text() == JSON_DOC

    def test_unchanged_not_written(self, file_factory):
        """Test nothing is written, not even a backup, when the value is
        already correct"""
        path, target = file_factory(JSON_DOC)

        assert not FileUpdater(target).update_ip('1.2.3.3')

        assert path.read_text() == JSON_DOC
        assert os.listdir(path.parent) == [path.name]

    def test_no_backup(self, file_factory):
        """Test no backup is made when the target does not ask for one"""
        path, target = file_factory(JSON_DOC, backup=False)
        FileUpdater(target).update_ip('1.2.3.4')
        assert os.listdir(path.parent) == [path.name]

    def test_backup_overwritten(self, file_factory):
        """Test only one backup is kept, holding the latest original"""
        path, target = file_factory(JSON_DOC)
        updater = FileUpdater(target)
        updater.update_ip('1.2.3.4')
        before_second = path.read_text()
        updater.update_ip('1.2.3.5')
        backup = path.parent / (path.name + '.backup')
        assert backup.read_text() == before_second
        assert sorted(os.listdir(path.parent)) == [path.name,
                                                   path.name + '.backup']

    def test_ini_update(self, file_factory):
        """Test an INI value is replaced and other keys kept"""
        path, target = file_factory(
            '[server]\npublic_ip = 1.2.3.3\nport = 80\n', fmt='ini')

        FileUpdater(target).update_ip('1.2.3.4')

        text = path.read_text()
        assert 'public_ip = 1.2.3.4' in text
        assert 'port = 80' in text

    def test_ini_comments_kept(self, file_factory):
        """Test comments in an INI file survive an update"""
        contents = ('; managed by ops\n[server]\n# public address\n'
                    'bind_ip = 1.2.3.3\nport = 80\n')
        path, target = file_factory(contents, fmt='ini',
                                    key_path='server/bind_ip')

        FileUpdater(target).update_ip('1.2.3.4')

        assert path.read_text() == contents.replace('1.2.3.3', '1.2.3.4')
        backup = path.parent / (path.name + '.backup')
        assert backup.read_text() == contents

    def test_yaml_mask_preserved(self, file_factory):
        """Test a CIDR mask survives in a YAML file"""
        path, target = file_factory('server:\n  public_ip: 10.0.0.1/24\n',
                                    fmt='yaml')
        FileUpdater(target).update_ip('10.0.0.2')
        assert FileUpdater(target).get_current_value() == '10.0.0.2/24'

    def test_toml_update(self, file_factory):
        """Test a TOML value is replaced"""
        path, target = file_factory('[server]\npublic_ip = "1.2.3.3"\n',
                                    fmt='toml')
        FileUpdater(target).update_ip('1.2.3.4')
        assert FileUpdater(target).get_current_value() == '1.2.3.4'

    def test_missing_key_written(self, file_factory, caplog):
        """Test a missing key is created, with a warning"""
        path, target = file_factory('{"other": 1}')
        assert FileUpdater(target).update_ip('1.2.3.4')
        assert json.loads(path.read_text()) == {
            'other': 1, 'server': {'public_ip': '1.2.3.4'}}
        assert "writing it unconditionally" in caplog.text

    def test_missing_file(self, tmp_path):
        """Test a missing file is a terminal access error"""
        target = ipupdater.FileTarget('gone', str(tmp_path / 'gone.json'),
                                      'json', 'server/public_ip')
        with pytest.raises(ipupdater.FileAccessError):
            FileUpdater(target).update_ip('1.2.3.4')

    def test_unparseable_file(self, file_factory):
        """Test a corrupt file raises FormatError and is left alone"""
        path, target = file_factory('{"server": ')
        with pytest.raises(ipupdater.FormatError):
            FileUpdater(target).update_ip('1.2.3.4')
        assert path.read_text() == '{"server": '

    def test_not_utf8(self, tmp_path):
        """Test a file that is not UTF-8 raises FormatError"""
        path = tmp_path / 'bin.json'
        path.write_bytes(b'\xff\xfe\x00')
        target = ipupdater.FileTarget('bin', str(path), 'json', 'a')
        with pytest.raises(ipupdater.FormatError):
            FileUpdater(target).update_ip('1.2.3.4')

    def test_write_failure_retryable(self, mocker, file_factory):
        """Test an I/O error during the write is retryable and leaves the
        file intact"""
        path, target = file_factory(JSON_DOC, backup=False)
        mocker.patch('os.replace', side_effect=OSError(errno.EIO, "I/O"))

        with pytest.raises(ipupdater.UpdateError) as exc_info:
            FileUpdater(target).update_ip('1.2.3.4')

        assert not isinstance(exc_info.value, ipupdater.FatalUpdateError)
        assert path.read_text() == JSON_DOC
        assert not any(name.startswith('.tmp_')
                       for name in os.listdir(path.parent))

    def test_mode_preserved(self, file_factory):
        """Test the file keeps its permission bits after an update"""
        path, target = file_factory(JSON_DOC)
        path.chmod(0o600)
        FileUpdater(target).update_ip('1.2.3.4')
        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_validate_file(self, file_factory, tmp_path):
        """Test validate_file passes good files and rejects bad ones"""
        _, good = file_factory(JSON_DOC)
        FileUpdater(good).validate_file()

        _, bad = file_factory('not json', filename='bad.json')
        with pytest.raises(ipupdater.FormatError):
            FileUpdater(bad).validate_file()

    def test_get_current_value(self, file_factory):
        """Test reading the current value, and None when missing or not a
        string"""
        _, target = file_factory(JSON_DOC)
        assert FileUpdater(target).get_current_value() == '1.2.3.3'

        _, missing = file_factory(JSON_DOC, key_path='server/nothing',
                                  filename='b.json')
        assert FileUpdater(missing).get_current_value() is None

        _, number = file_factory(JSON_DOC, key_path='server/port',
                                 filename='c.json')
        assert FileUpdater(number).get_current_value() is None
