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
Thin client for the per-user systemd manager.
"""
from .process_runner import CommandResult, CommandRunner


class SystemdUserManager:
    """
    Issues ``systemctl --user`` calls.
    """

    def __init__(self, runner: CommandRunner, binary: str = "systemctl"):
        self.runner = runner
        self.binary = binary

    def _call(self, *args: str) -> CommandResult:
        return self.runner.run([self.binary, "--user", *args])

    def daemon_reload(self) -> CommandResult:
        return self._call("daemon-reload")

    def list_unit_files(self) -> CommandResult:
        return self._call("list-unit-files", "--no-legend", "--no-pager")

    def has_unit(self, unit: str) -> bool:
        """
        True when ``unit`` appears in the unit-file listing.
        """
        result = self.list_unit_files()
        if not result.ok:
            return False
        return any(line.split()[0] == unit for line in result.stdout.splitlines() if line.split())

    def enable(self, unit: str) -> CommandResult:
        return self._call("enable", unit)

    def start(self, unit: str) -> CommandResult:
        return self._call("start", unit)

    def stop(self, unit: str) -> CommandResult:
        return self._call("stop", unit)
