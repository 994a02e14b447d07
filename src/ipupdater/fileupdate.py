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

"""Updates an IP address stored in a structured configuration file"""

import ipaddress
import logging
import os
import re
import shutil
import tempfile
from typing import Any, Optional, Tuple

from .configuration import FileTarget
from .exceptions import (FileAccessError, FormatError, UpdateError,
                         ValidationWarning)
from .formats import DocumentFormat, get_format


log = logging.getLogger('ipupdater.file')

_MASK_RE = re.compile(r'^(.+?)(/\d+)$')


def validate_ip(value: str):
    """Check that a value is an IP address

    :raises ValidationWarning: if it is not
    """
    try:
        ipaddress.ip_address(value)
    except ValueError:
        raise ValidationWarning(f"'{value}' is not a valid IP address") \
            from None


def merge_ip_with_mask(current: str, new_ip: str) -> str:
    """Produce the value to store in place of ``current``. If ``current``
    carries a CIDR mask (``10.0.0.1/24``), the mask is kept on the new IP.

    Malformed addresses are logged but never stop the merge.

    :param current: The value currently stored
    :param new_ip: The new IP address, without a mask
    :return: ``new_ip``, with the mask from ``current`` if it had one
    """
    match = _MASK_RE.match(current)
    current_ip = match.group(1) if match else current
    for value in (current_ip, new_ip):
        try:
            validate_ip(value)
        except ValidationWarning as e:
            log.warning("%s", e)
    if match:
        return new_ip + match.group(2)
    return new_ip


def atomic_write(path: str, data: bytes):
    """Replace a file's contents atomically. The data goes to a temporary file
    in the same directory, which is synced to disk and then renamed over the
    original. If the original exists, its permission bits are kept. On any
    failure the temporary file is removed and the original is untouched.

    :param path: The file to replace (or create)
    :param data: The new contents
    :raises OSError: if the write or rename fails
    """
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(
        prefix='.tmp_' + os.path.basename(path) + '.', dir=directory
    )
    try:
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        try:
            shutil.copymode(path, tmp_path)
        except FileNotFoundError:
            pass
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        raise


class FileUpdater:
    """Keeps one value in one structured file set to the current IP

    :param target: The file target
    """

    def __init__(self, target: FileTarget):
        #: The file target
        self.target: FileTarget = target

        #: Logger (see standard :mod:`logging` module)
        self.log: logging.Logger = logging.getLogger(
            f'ipupdater.file.{target.name}'
        )

    @property
    def backup_path(self) -> str:
        return self.target.path + '.backup'

    def _os_error(self, e: OSError, action: str) -> UpdateError:
        """Translate an :exc:`OSError`. Missing files and permission problems
        will not fix themselves; anything else might."""
        message = f"Could not {action} {e.filename or self.target.path}: " \
                  f"{e.strerror or e}"
        self.log.error(message)
        if isinstance(e, (FileNotFoundError, PermissionError,
                          IsADirectoryError)):
            return FileAccessError(message)
        return UpdateError(message)

    def _load(self) -> Tuple[bytes, DocumentFormat, Any]:
        """Read and parse the file

        :return: ``(original_bytes, format, tree)``
        """
        doc_format = get_format(self.target.format)
        try:
            with open(self.target.path, 'rb') as f:
                raw = f.read()
        except OSError as e:
            raise self._os_error(e, 'read') from e
        try:
            text = raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise FormatError(f"{self.target.path} is not valid UTF-8") \
                from e
        tree = doc_format.parse(text)
        return raw, doc_format, tree

    def validate_file(self):
        """Check that the file exists and parses in its format

        :raises FileAccessError: if the file cannot be read
        :raises FormatError: if the file does not parse
        """
        self._load()

    def get_current_value(self) -> Optional[str]:
        """Get the value currently at the key path

        :return: The value, or ``None`` if it is missing or not a string

        :raises FileAccessError: if the file cannot be read
        :raises FormatError: if the file does not parse
        :raises InvalidPathError: if the key path is not usable in the file
        """
        _, doc_format, tree = self._load()
        try:
            value = doc_format.get_value(tree, self.target.key_path)
        except KeyError:
            return None
        if not isinstance(value, str):
            return None
        return value

    def update_ip(self, desired_ip: str) -> bool:
        """Set the value at the key path to the desired IP, keeping any CIDR
        mask the current value has. Nothing is written if the value is
        already correct.

        :param desired_ip: The IP to store
        :return: ``True`` if the file was written, ``False`` if it was
                 already up to date

        :raises FileAccessError: if the file is missing or not accessible
        :raises FormatError: if the file does not parse
        :raises InvalidPathError: if the key path is not usable in the file
        :raises UpdateError: on other I/O errors
        """
        raw, doc_format, tree = self._load()
        key_path = self.target.key_path

        try:
            current = doc_format.get_value(tree, key_path)
        except KeyError:
            current = None
        if isinstance(current, str):
            new_value = merge_ip_with_mask(current, desired_ip)
            if new_value == current:
                self.log.debug("%s already holds %s", key_path, current)
                return False
        else:
            self.log.warning("No string value at %s in %s, writing it "
                             "unconditionally", key_path, self.target.path)
            new_value = desired_ip

        if self.target.backup:
            try:
                atomic_write(self.backup_path, raw)
            except OSError as e:
                raise self._os_error(e, 'write backup') from e
            self.log.debug("Backed up %s to %s", self.target.path,
                           self.backup_path)

        doc_format.set_value(tree, key_path, new_value)
        data = doc_format.serialize(tree).encode('utf-8')
        try:
            atomic_write(self.target.path, data)
        except OSError as e:
            raise self._os_error(e, 'write') from e
        self.log.info("Set %s in %s to %s", key_path, self.target.path,
                      new_value)
        return True
