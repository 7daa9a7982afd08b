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
Error hierarchy for stack workflows.

Every error is fatal to the workflow that raises it and carries the label of
the step that failed, so the CLI can report ``FATAL [step]: cause``.
Tolerated conditions are never raised; they are reported as
:class:`~quaystack.MODELS.results.StepOutcome` values instead.
"""
from typing import Optional


class StackError(Exception):
    """Base class for all fatal workflow errors."""

    step = "stack"

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        if step:
            self.step = step

    def __str__(self) -> str:
        return self.args[0] if self.args else self.__class__.__name__


class ConfigError(StackError):
    """The backing configuration store is missing, incomplete or unsafe."""

    step = "config"


class ConfigFileNotFound(ConfigError):
    def __init__(self, path: str):
        super().__init__(f"Configuration file not found at: {path}")
        self.path = path


class MissingConfig(ConfigError):
    def __init__(self, key: str, path: str = ""):
        where = f" in {path}" if path else ""
        super().__init__(f"{key} is not set or empty{where}")
        self.key = key


class UnsafeQuoting(ConfigError):
    def __init__(self, key: str):
        super().__init__(
            f"{key} is not wrapped in single quotes. "
            f"Example: {key}='your!pass@word'"
        )
        self.key = key


class InvalidConfig(ConfigError):
    def __init__(self, key: str, reason: str):
        super().__init__(f"{key} is invalid: {reason}")
        self.key = key


class PrerequisiteError(StackError):
    """A required host binary is not installed."""

    step = "prerequisites"


class ProvisionError(StackError):
    """Creating a network or directory failed for a reason other than existence."""

    step = "provision"


class SetupMissing(ProvisionError):
    """A previous install is required but its artifacts are absent."""

    step = "setup-check"


class ServiceStartError(StackError):
    """The container runtime refused to start a service or run a command in it."""

    step = "start"


class ReadinessTimeout(StackError):
    """A dependency never became ready within its attempt budget."""

    step = "readiness"

    def __init__(self, service: str, attempts: int, last_output: str = ""):
        detail = f" (last output: {last_output})" if last_output else ""
        super().__init__(
            f"{service} did not become ready after {attempts} attempts{detail}"
        )
        self.service = service
        self.attempts = attempts


class CheckpointArtifactMissing(StackError):
    step = "checkpoint"

    def __init__(self, path: str):
        super().__init__(
            f"Config file not found: {path}. Please re-run the install and "
            f"follow the instructions carefully."
        )
        self.path = path


class PatchError(StackError):
    step = "patch"


class UnpackFailure(PatchError):
    def __init__(self, archive: str, reason: str):
        super().__init__(f"Could not unpack {archive}: {reason}")
        self.archive = archive


class MissingSettingsFile(PatchError):
    def __init__(self, path: str):
        super().__init__(f"{path} not found after unpacking. Cannot apply patch.")
        self.path = path


class GeneratorFailure(StackError):
    """The init system did not produce the expected derived unit after reload."""

    step = "generate"


class ActivationError(StackError):
    """The init system failed to start the application unit."""

    step = "activate"
