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
Teardown of an installed stack: the install workflow run backwards.
"""
import logging
from typing import Callable, Optional

import click

from ..CONVERTERS.to_systemd import QuadletGenerator
from ..MODELS.errors import StackError
from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.results import OutcomeStatus, TeardownReport
from ..MODELS.service_definition import ServiceDescriptor
from ..RUNNERS.container_runtime import PodmanRuntime, is_missing
from ..RUNNERS.dependency_resolver import DependencyResolver
from ..RUNNERS.init_system import SystemdUserManager
from .network_manager import NetworkManager
from .volume_manager import VolumeManager

logger = logging.getLogger(__name__)


def confirm_deletion(message: str) -> bool:
    """Asks on the terminal; anything but an explicit yes declines."""
    return click.confirm(message, default=False)


class TeardownCoordinator:
    """
    Stops the services, unregisters their units, removes the network, and
    deletes the data root once the operator confirms.

    Already-stopped services, already-removed files and networks, and an
    unreachable systemd bus are recorded as tolerated outcomes. Deleting data
    happens only when ``confirm`` returns True.
    """

    def __init__(
        self,
        runtime: PodmanRuntime,
        init: SystemdUserManager,
        generator: QuadletGenerator,
        networks: NetworkManager,
        volumes: VolumeManager,
        resolver: Optional[DependencyResolver] = None,
    ):
        self.runtime = runtime
        self.init = init
        self.generator = generator
        self.networks = networks
        self.volumes = volumes
        self.resolver = resolver or DependencyResolver()

    def tear_down(self, stack: OrchestrationConfig,
                  confirm: Callable[[str], bool] = confirm_deletion) -> TeardownReport:
        """
        Runs every teardown step in order.

        :param stack: The installed stack.
        :param confirm: Asked once, last, before deleting data.
        :return: One outcome per step, and whether data was deleted.
        :raises StackError: On a failure that is not one of the tolerated kinds.
        """
        report = TeardownReport()
        logger.info("[teardown] Starting full uninstallation...")

        for name in self.resolver.shutdown_order(stack):
            self.stop_service(stack.services[name], report)

        report.outcomes.append(self.generator.remove(stack))

        logger.info("[reload] Reloading systemd user daemon (failure is tolerated)...")
        reloaded = self.init.daemon_reload()
        if reloaded.ok:
            report.add("reload")
        else:
            note = f"systemd reload failed: {reloaded.error_text()}"
            logger.warning("[reload] %s", note)
            report.add("reload", OutcomeStatus.TOLERATED, note)

        logger.info("[network] Removing podman network '%s'...", stack.network)
        report.outcomes.append(self.networks.remove_network(stack.network))

        self.delete_data(report, confirm)
        return report

    def stop_service(self, svc: ServiceDescriptor, report: TeardownReport) -> None:
        """
        Stops the service's unit, then its container, by the shared name.
        """
        step = f"stop {svc.name}"
        logger.info("[%s] Stopping %s...", step, svc.container_name)
        notes = []

        unit = self.init.stop(svc.service_unit)
        if not unit.ok:
            notes.append(f"unit {svc.service_unit}: {unit.error_text()}")

        container = self.runtime.stop(svc.container_name)
        if not container.ok:
            if not is_missing(container):
                raise StackError(f"Could not stop {svc.container_name}: {container.error_text()}", step=step)
            notes.append(f"container {svc.container_name} already stopped")

        if notes:
            note = "; ".join(notes)
            logger.warning("[%s] %s", step, note)
            report.add(step, OutcomeStatus.TOLERATED, note)
        else:
            logger.info("[%s] Stopped.", step)
            report.add(step)

    def delete_data(self, report: TeardownReport, confirm: Callable[[str], bool]) -> None:
        root = str(self.volumes.config.data_root)
        logger.warning("[delete-data] This will permanently delete all data, config, and storage in %s", root)
        if confirm(f"PERMANENTLY delete {root}?") is not True:
            logger.info("[delete-data] Deletion declined; %s was kept.", root)
            report.add("delete-data", OutcomeStatus.SKIPPED, f"operator declined; {root} kept")
            return
        if self.volumes.destroy():
            report.add("delete-data")
        else:
            report.add("delete-data", OutcomeStatus.TOLERATED, f"{root} already absent")
        report.data_deleted = True
