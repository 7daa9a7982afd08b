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
Orchestration of the stack's three workflows: install, start and teardown.
"""
import logging
import time
from typing import Callable, Iterable, List, Optional

import click

from ..CONVERTERS.config_patcher import ConfigPatcher
from ..CONVERTERS.stack_builder import StackBuilder
from ..CONVERTERS.to_systemd import QuadletGenerator
from ..MODELS.errors import PrerequisiteError
from ..MODELS.results import InstallReport, BringUpResult, OutcomeStatus, StepOutcome, TeardownReport
from ..MODELS.service_definition import ServiceRole
from ..MODELS.stack_config import OrchestratorSettings, StackConfig
from ..RUNNERS.container_runtime import PodmanRuntime
from ..RUNNERS.dependency_resolver import DependencyResolver
from ..RUNNERS.init_system import SystemdUserManager
from ..RUNNERS.process_runner import CommandRunner
from .checkpoint import CheckpointCoordinator, press_enter
from .dependency_sequencer import DependencySequencer
from .health_monitor import ReadinessProber
from .network_manager import NetworkManager
from .teardown import TeardownCoordinator, confirm_deletion
from .volume_manager import VolumeManager

logger = logging.getLogger(__name__)

BANNER = "=" * 72


class StackOrchestrator:
    """
    Wires the stack's components together and runs each workflow as one
    linear sequence of blocking steps. The first fatal error stops it.
    """
    def __init__(
        self,
        config: StackConfig,
        settings: Optional[OrchestratorSettings] = None,
        runner: Optional[CommandRunner] = None,
        sleep: Callable[[float], None] = time.sleep,
        wait_for_operator: Callable[[str], object] = press_enter,
        echo: Callable[[str], None] = click.echo,
    ):
        """
        Initializes the orchestrator.

        :param config: Validated stack configuration.
        :param settings: Host-side tunables.
        :param runner: Runs runtime and systemd commands.
        :param sleep: Used for every fixed delay and retry interval.
        :param wait_for_operator: Blocks until the operator continues.
        :param echo: Writes operator-facing text.
        """
        self.config = config
        self.settings = settings or OrchestratorSettings()
        self.runner = runner or CommandRunner()
        self.runner.add_secret(config.postgres_password)
        self.runner.add_secret(config.redis_password)
        self.echo = echo

        self.stack = StackBuilder(config, app_settle_delay=self.settings.app_settle_delay).build()
        self.resolver = DependencyResolver()

        self.runtime = PodmanRuntime(self.runner, self.settings.runtime_binary)
        self.init = SystemdUserManager(self.runner, self.settings.init_binary)
        self.networks = NetworkManager(self.runtime)
        self.volumes = VolumeManager(config)
        self.prober = ReadinessProber(
            self.runtime,
            max_attempts=self.settings.readiness_attempts,
            interval=self.settings.readiness_interval,
            sleep=sleep,
        )
        self.sequencer = DependencySequencer(self.runtime, self.prober, self.resolver, sleep=sleep)
        self.checkpoint = CheckpointCoordinator(
            config, self.settings.runtime_binary, wait_for_operator=wait_for_operator, echo=echo
        )
        self.patcher = ConfigPatcher()
        self.generator = QuadletGenerator(
            self.init,
            str(self.settings.unit_dir),
            reload_settle_delay=self.settings.reload_settle_delay,
            sleep=sleep,
        )
        self.teardown_coordinator = TeardownCoordinator(
            self.runtime, self.init, self.generator, self.networks, self.volumes, self.resolver
        )

    def check_prerequisites(self, binaries: Iterable[str]) -> None:
        """
        :raises PrerequisiteError: For the first binary not found on PATH.
        """
        logger.info("[prerequisites] Checking dependencies...")
        for binary in binaries:
            if not self.runner.which(binary):
                raise PrerequisiteError(f"{binary} is not installed. Please install it to continue.")
        logger.info("[prerequisites] All dependencies found.")

    def _dependency_names(self):
        return [
            svc.name for svc in self.stack.services.values()
            if svc.role in (ServiceRole.DATASTORE, ServiceRole.CACHE)
        ]

    def install(self) -> InstallReport:
        """
        Provisions the stack, starts its dependencies, waits for the operator
        to produce the registry configuration, patches it, and hands the
        services over to systemd.
        """
        self.check_prerequisites([self.settings.runtime_binary, self.settings.init_binary])
        report = InstallReport()

        report.directories = self.volumes.ensure_directories(str(self.config.data_root))
        self.volumes.install_env_file()
        report.network = self.networks.ensure_network(self.config.network, self.config.subnet)

        dependencies = self._dependency_names()
        report.bring_up = self.sequencer.bring_up(self.stack, only=dependencies)

        instructions = self.checkpoint.render_instructions(report.bring_up.addresses)
        archive = self.checkpoint.run(instructions)

        report.patch = self.patcher.patch(archive, str(self.config.config_dir))

        logger.info("[handover] Stopping bootstrap containers before systemd takes over...")
        self.sequencer.stop_services(self.stack, dependencies)

        report.units = self.generator.generate(self.stack)
        self.generator.activate(self.stack.by_role(ServiceRole.APPLICATION))

        self._install_banner()
        return report

    def start(self) -> BringUpResult:
        """
        Restarts an installed stack directly on the runtime, gating each layer
        on the one below it. No checkpoint.
        """
        self.check_prerequisites([self.settings.runtime_binary])
        self.volumes.verify_installed()
        self.release_units()
        self.networks.ensure_network(self.config.network, self.config.subnet)
        result = self.sequencer.bring_up(self.stack)

        self._banner("SUCCESS: Quay environment is starting!")
        self.echo("You can access it at http://localhost:8080")
        self.echo(f"To check its logs, run: {self.settings.runtime_binary} logs -f {self._app().container_name}")
        self.echo("")
        return result

    def release_units(self) -> List[StepOutcome]:
        """
        Stops the stack's systemd units, dependents first, so directly-run
        containers can take over their names. A unit that is not loaded, or a
        systemd instance that cannot be reached, is tolerated.
        """
        outcomes = []
        for name in self.resolver.shutdown_order(self.stack):
            unit = self.stack.services[name].service_unit
            step = f"release {name}"
            stopped = self.init.stop(unit)
            if stopped.ok:
                logger.info("[%s] Stopped %s.", step, unit)
                outcomes.append(StepOutcome(step=step))
                continue
            note = f"unit {unit}: {stopped.error_text()}"
            logger.warning("[%s] %s", step, note)
            outcomes.append(StepOutcome(step=step, status=OutcomeStatus.TOLERATED, note=note))
        return outcomes

    def teardown(self, confirm: Callable[[str], bool] = confirm_deletion) -> TeardownReport:
        """
        Removes everything install created. Data is deleted only if ``confirm``
        returns True.
        """
        self.check_prerequisites([self.settings.runtime_binary])
        report = self.teardown_coordinator.tear_down(self.stack, confirm=confirm)
        if report.data_deleted:
            self._banner("SUCCESS: Quay has been completely uninstalled.")
        return report

    def _app(self):
        return self.stack.by_role(ServiceRole.APPLICATION)

    def _banner(self, title: str) -> None:
        self.echo("")
        self.echo(BANNER)
        self.echo(f"  {title}")
        self.echo(BANNER)
        self.echo("")

    def _install_banner(self) -> None:
        unit = self._app().service_unit
        self._banner("SUCCESS: Persistence is enabled via Quadlets!")
        self.echo("Quay is starting at http://localhost:8080")
        self.echo("")
        self.echo("If you have not already, run this command ONCE to enable start at boot:")
        self.echo("")
        self.echo("   loginctl enable-linger $(whoami)")
        self.echo("")
        self.echo("Use systemctl to manage your services:")
        for verb in ("status", "stop", "start"):
            self.echo(f"   systemctl --user {verb} {unit}")
        self.echo("")
