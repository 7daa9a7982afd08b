# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Unpacking and patching of the registry configuration bundle.

The bundle produced by the web config tool carries database connection
settings that modern Postgres rejects. Every line mentioning one of them is
deleted from the settings file.
"""
import logging
import os
import shutil
import tarfile
import tempfile
from typing import Iterable, List, Optional, Sequence

import yaml

from ..MODELS.errors import MissingSettingsFile, PatchError, UnpackFailure
from ..MODELS.results import PatchResult

logger = logging.getLogger(__name__)

# Connection settings incompatible with modern Postgres
DEFAULT_RULES = (
    "keepalivescount",
    "keepalivesidle",
    "keepalivesinterval",
    "tcpusertimeout",
)

SETTINGS_FILE = "config.yaml"


class ConfigPatcher:
    """
    Removes every line containing any of a set of substrings.

    Rules are plain substrings matched anywhere in a line, not keys: a rule
    that happens to occur inside a value deletes that line too. Non-matching
    lines are written back byte for byte.
    """

    def __init__(self, rules: Sequence[str] = DEFAULT_RULES, settings_name: str = SETTINGS_FILE):
        self.rules = tuple(rules)
        self.settings_name = settings_name

    def patch(self, archive_path: str, config_dir: str, remove_archive: bool = False) -> PatchResult:
        """
        Unpacks the bundle into ``config_dir`` and patches its settings file.

        :param archive_path: Compressed tar bundle.
        :param config_dir: Directory to unpack into.
        :param remove_archive: Delete the bundle after a successful patch.
        :raises UnpackFailure: If the bundle cannot be read or extracted.
        :raises MissingSettingsFile: If the bundle did not contain the settings file.
        """
        logger.info("[patch] Unpacking configuration...")
        self.unpack(archive_path, config_dir)

        settings = os.path.join(config_dir, self.settings_name)
        if not os.path.isfile(settings):
            raise MissingSettingsFile(settings)

        result = self.rewrite(settings)
        self.sanity_check(settings)

        if remove_archive:
            os.remove(archive_path)
            logger.info("[patch] Removed %s.", archive_path)
        logger.info("[patch] Config unpacked and patched.")
        return result

    def unpack(self, archive_path: str, dest_dir: str) -> List[str]:
        """
        Extracts the bundle, skipping absolute paths and parent references.

        :return: Names of the extracted members.
        """
        extracted = []
        try:
            with tarfile.open(archive_path, mode="r:*") as tar:
                for member in tar.getmembers():
                    if member.name.startswith("/") or ".." in member.name.split("/"):
                        logger.warning("[patch] Skipping unsafe archive member %s", member.name)
                        continue
                    if member.issym() or member.islnk():
                        logger.warning("[patch] Skipping link archive member %s", member.name)
                        continue
                    tar.extract(member, dest_dir, filter="data")
                    extracted.append(member.name)
        except (tarfile.TarError, OSError, EOFError) as e:
            raise UnpackFailure(archive_path, str(e)) from e
        logger.info("[patch] Extracted %d entries into %s.", len(extracted), dest_dir)
        return extracted

    def matching_rules(self, line: bytes) -> List[str]:
        return [rule for rule in self.rules if rule.encode("utf-8") in line]

    def filter_lines(self, lines: Iterable[bytes]) -> tuple:
        """
        Splits lines into (kept, removed), keeping their order.
        """
        kept, removed = [], []
        for line in lines:
            (removed if self.matching_rules(line) else kept).append(line)
        return kept, removed

    def rewrite(self, settings_path: str) -> PatchResult:
        """
        Applies every rule in a single pass and replaces the file atomically.
        On any I/O error the original file is left as it was.
        """
        for rule in self.rules:
            logger.info("[patch] Queueing patch to remove incompatible setting: '%s'", rule)

        try:
            with open(settings_path, "rb") as f:
                lines = f.read().splitlines(keepends=True)
        except OSError as e:
            raise PatchError(f"Could not read {settings_path}: {e}") from e

        kept, removed = self.filter_lines(lines)
        matched = sorted({rule for line in removed for rule in self.matching_rules(line)})

        directory = os.path.dirname(os.path.abspath(settings_path))
        tmp_path: Optional[str] = None
        try:
            with tempfile.NamedTemporaryFile("wb", dir=directory, prefix=".config-", delete=False) as tmp:
                tmp_path = tmp.name
                tmp.writelines(kept)
                tmp.flush()
                os.fsync(tmp.fileno())
            shutil.copymode(settings_path, tmp_path)
            os.replace(tmp_path, settings_path)
        except OSError as e:
            if tmp_path and os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise PatchError(f"Could not rewrite {settings_path}: {e}") from e

        logger.info("[patch] Config patching complete: removed %d of %d lines.", len(removed), len(lines))
        return PatchResult(
            settings_file=settings_path,
            lines_before=len(lines),
            lines_removed=len(removed),
            matched_rules=matched,
        )

    def sanity_check(self, settings_path: str) -> bool:
        """
        Warns if the patched file no longer parses as YAML.
        """
        try:
            with open(settings_path, "r") as f:
                yaml.safe_load(f)
        except yaml.YAMLError as e:
            logger.warning("[patch] %s no longer parses as YAML after patching: %s", settings_path, e)
            return False
        return True
