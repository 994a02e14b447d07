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

"""Structured document formats and slash-delimited key paths"""

import configparser
import json
import sys
from typing import Any, Dict, List, MutableMapping

if sys.version_info < (3, 11):
    import tomli as tomllib
else:
    import tomllib

import tomli_w
import yaml
from configupdater import ConfigUpdater

from .exceptions import FormatError, InvalidPathError


def split_key_path(path: str) -> List[str]:
    """Split a key path like ``'server/public_ip'`` into its segments. Empty
    segments (from doubled or trailing slashes) are dropped.

    :raises InvalidPathError: if no segments remain
    """
    segments = [seg for seg in path.split('/') if seg]
    if not segments:
        raise InvalidPathError(f"Key path '{path}' is empty")
    return segments


def get_nested(tree: Any, path: str) -> Any:
    """Get the value at a key path

    :param tree: Nested mappings
    :param path: Slash-delimited key path

    :raises KeyError: if a key along the path is absent
    :raises InvalidPathError: if the path runs through a value that is not a
                              mapping
    """
    node = tree
    walked = []
    for seg in split_key_path(path):
        if not isinstance(node, MutableMapping):
            raise InvalidPathError(f"'{'/'.join(walked)}' in key path "
                                   f"'{path}' is not a mapping")
        node = node[seg]
        walked.append(seg)
    return node


def set_nested(tree: MutableMapping, path: str, value: Any):
    """Set the value at a key path, creating missing intermediate mappings

    :param tree: Nested mappings, modified in place
    :param path: Slash-delimited key path
    :param value: The value to set

    :raises InvalidPathError: if the path runs through a value that is not a
                              mapping
    """
    segments = split_key_path(path)
    node = tree
    for i, seg in enumerate(segments[:-1]):
        child = node.get(seg)
        if child is None:
            child = dict()
            node[seg] = child
        elif not isinstance(child, MutableMapping):
            raise InvalidPathError(f"'{'/'.join(segments[:i + 1])}' in key "
                                   f"path '{path}' is not a mapping")
        node = child
    node[segments[-1]] = value


class DocumentFormat:
    """Base class for a structured document format. A document is parsed
    into a tree, read and modified through key paths, and serialized back.
    """

    #: Format name as used in the configuration
    name: str = ''

    def parse(self, text: str) -> Any:
        """Parse document text into a tree

        :raises FormatError: if the text is not a valid document
        """
        raise NotImplementedError

    def serialize(self, tree: Any) -> str:
        """Serialize a tree back into document text"""
        raise NotImplementedError

    def get_value(self, tree: Any, path: str) -> Any:
        """Get the value at a key path

        :raises KeyError: if the value does not exist
        :raises InvalidPathError: if the path is not usable in this document
        """
        return get_nested(tree, path)

    def set_value(self, tree: Any, path: str, value: str):
        """Set the value at a key path

        :raises InvalidPathError: if the path is not usable in this document
        """
        set_nested(tree, path, value)

    def _check_mapping(self, tree: Any) -> Dict:
        if not isinstance(tree, dict):
            raise FormatError(f"Top level of {self.name.upper()} document is "
                              "not a mapping")
        return tree


class JSONFormat(DocumentFormat):
    name = 'json'

    def parse(self, text: str) -> Dict:
        try:
            return self._check_mapping(json.loads(text))
        except json.JSONDecodeError as e:
            raise FormatError(f"Invalid JSON: {e}") from e

    def serialize(self, tree: Any) -> str:
        return json.dumps(tree, indent=2, ensure_ascii=False) + '\n'


class YAMLFormat(DocumentFormat):
    name = 'yaml'

    def parse(self, text: str) -> Dict:
        try:
            tree = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise FormatError(f"Invalid YAML: {e}") from e
        if tree is None:
            return dict()
        return self._check_mapping(tree)

    def serialize(self, tree: Any) -> str:
        return yaml.safe_dump(tree, default_flow_style=False, sort_keys=False,
                              allow_unicode=True)


class TOMLFormat(DocumentFormat):
    name = 'toml'

    def parse(self, text: str) -> Dict:
        try:
            return tomllib.loads(text)
        except tomllib.TOMLDecodeError as e:
            raise FormatError(f"Invalid TOML: {e}") from e

    def serialize(self, tree: Any) -> str:
        return tomli_w.dumps(tree)


class INIFormat(DocumentFormat):
    """INI documents, edited in place with :mod:`configupdater` so comments,
    blank lines and key order survive a write. Key paths must be exactly
    ``section/key``. Key case is preserved, ``%`` is not treated specially and
    repeated keys are tolerated."""

    name = 'ini'

    @staticmethod
    def _new_updater() -> ConfigUpdater:
        updater = ConfigUpdater(strict=False)
        updater.optionxform = str  # type: ignore
        return updater

    @staticmethod
    def _split(path: str):
        segments = split_key_path(path)
        if len(segments) != 2:
            raise InvalidPathError(f"INI key path '{path}' must be exactly "
                                   "'section/key'")
        return segments

    def parse(self, text: str) -> ConfigUpdater:
        updater = self._new_updater()
        try:
            updater.read_string(text)
        except configparser.Error as e:
            raise FormatError(f"Invalid INI: {e}") from e
        return updater

    def serialize(self, tree: ConfigUpdater) -> str:
        return str(tree)

    def get_value(self, tree: ConfigUpdater, path: str) -> str:
        section, key = self._split(path)
        if not tree.has_option(section, key):
            raise KeyError(path)
        return tree.get(section, key).value

    def set_value(self, tree: ConfigUpdater, path: str, value: str):
        section, key = self._split(path)
        if not tree.has_section(section):
            tree.add_section(section)
        tree.set(section, key, value)


_FORMATS = {
    'json': JSONFormat,
    'yaml': YAMLFormat,
    'yml': YAMLFormat,
    'toml': TOMLFormat,
    'ini': INIFormat,
}


def get_format(name: str) -> DocumentFormat:
    """Get the handler for a format name (case-insensitive)

    :raises FormatError: if the format is not supported
    """
    try:
        return _FORMATS[name.lower()]()
    except KeyError:
        raise FormatError(f"Unsupported file format '{name}'") from None
