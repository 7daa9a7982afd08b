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
Execution of one-shot host commands with captured output.
"""
import logging
import shutil
import subprocess
from dataclasses import dataclass
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)

MASK = "******"


@dataclass
class CommandResult:
    """Outcome of a finished command."""

    args: List[str]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    @property
    def output(self) -> str:
        """Stdout and stderr together, as a shell pipeline would see them."""
        return (self.stdout or "") + (self.stderr or "")

    def error_text(self) -> str:
        text = (self.stderr or self.stdout or "").strip()
        return text[:500] if text else f"Exit code: {self.returncode}"


class CommandRunner:
    """
    Runs host commands synchronously and returns their result.

    Every call blocks until the command exits. Values registered as secrets
    are masked in the debug log of each command line.
    """

    def __init__(self, secrets: Optional[Iterable[str]] = None, timeout: Optional[float] = None):
        """
        Args:
            secrets: Values to mask when logging command lines.
            timeout: Seconds before a command is abandoned. None waits forever.
        """
        self.secrets = [s for s in (secrets or []) if s]
        self.timeout = timeout

    def add_secret(self, value: str) -> None:
        if value and value not in self.secrets:
            self.secrets.append(value)

    def describe(self, args: List[str]) -> str:
        line = " ".join(args)
        for secret in self.secrets:
            line = line.replace(secret, MASK)
        return line

    def which(self, binary: str) -> Optional[str]:
        return shutil.which(binary)

    def run(self, args: List[str]) -> CommandResult:
        """
        Runs a command and captures its output.

        Args:
            args: Command and arguments. Never passed through a shell.

        Returns:
            CommandResult: Exit code and captured output. A command that cannot
            be launched, or that times out, yields a non-zero result instead
            of raising.
        """
        logger.debug("$ %s", self.describe(args))
        try:
            proc = subprocess.run(
                args,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                # arguments are never re-split by a shell
                shell=False,
            )
        except FileNotFoundError as e:
            return CommandResult(args=list(args), returncode=127, stderr=str(e))
        except subprocess.TimeoutExpired:
            return CommandResult(args=list(args), returncode=124, stderr="Command timed out")

        result = CommandResult(
            args=list(args),
            returncode=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )
        if not result.ok:
            logger.debug("  exit %d: %s", result.returncode, result.error_text())
        return result
