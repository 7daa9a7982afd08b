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
Ordered, readiness-gated startup of the stack's containers.
"""
import logging
import time
from typing import Callable, Optional, Sequence

from ..MODELS.errors import ServiceStartError
from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.results import BringUpResult
from ..MODELS.service_definition import ServiceDescriptor
from ..RUNNERS.container_runtime import PodmanRuntime, is_missing
from ..RUNNERS.dependency_resolver import DependencyResolver
from .health_monitor import ReadinessProber

logger = logging.getLogger(__name__)


class DependencySequencer:
    """
    Starts services one layer at a time: datastore, cache, application.

    A service starts only after every service it depends on has passed its
    readiness check. Services without a check get their fixed settle delay
    instead, which only proves the container was launched.
    """

    def __init__(
        self,
        runtime: PodmanRuntime,
        prober: ReadinessProber,
        resolver: Optional[DependencyResolver] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.runtime = runtime
        self.prober = prober
        self.resolver = resolver or DependencyResolver()
        self.sleep = sleep

    def bring_up(self, stack: OrchestrationConfig, only: Optional[Sequence[str]] = None) -> BringUpResult:
        """
        Starts the selected services in dependency order.

        :param stack: The stack definition.
        :param only: Names of the services to start; all of them if None.
            Dependencies outside the selection must already be running.
        :return: Started services, their addresses and probe results.
        :raises ServiceStartError: If a container or post-start command fails.
        :raises ReadinessTimeout: If a service never becomes ready. Services
            started before it are left running.
        """
        order = self.resolver.resolve_order(stack, only=only)
        logger.info("[sequence] Starting services in order: %s", ", ".join(order))

        result = BringUpResult()
        for name in order:
            svc = stack.services[name]
            self.start_service(svc)
            result.started.append(name)

            if svc.readiness:
                result.probes[name] = self.prober.wait_ready(svc)
            elif svc.settle_delay:
                logger.info("[sequence] Waiting %ss for %s to start (no readiness check)...",
                            _fmt(svc.settle_delay), name)
                self.sleep(svc.settle_delay)

            for command in svc.post_start:
                self.run_post_start(svc, command)

            address = self.record_address(svc, required=bool(stack.dependents_of(name)))
            if address:
                result.addresses[name] = address
        return result

    def start_service(self, svc: ServiceDescriptor) -> None:
        logger.info("[start] Starting %s container on '%s'...", svc.name, svc.network)
        started = self.runtime.run(svc)
        if not started.ok:
            raise ServiceStartError(f"Could not start {svc.name}: {started.error_text()}", step=f"start {svc.name}")

    def run_post_start(self, svc: ServiceDescriptor, command: Sequence[str]) -> None:
        logger.info("[start] Running in %s: %s", svc.name, " ".join(command))
        done = self.runtime.exec(svc.container_name, list(command))
        if not done.ok:
            raise ServiceStartError(
                f"Command failed in {svc.name}: {done.error_text()}", step=f"configure {svc.name}"
            )

    def record_address(self, svc: ServiceDescriptor, required: bool = True) -> Optional[str]:
        """
        Returns the service's address: the fixed one, else what the runtime
        assigned. Only fatal when other services need the address.
        """
        if svc.ip:
            logger.info("[address] %s is running at (static) IP: %s", svc.name, svc.ip)
            return svc.ip
        address = self.runtime.inspect_address(svc.container_name, svc.network)
        if not address:
            if not required:
                logger.warning("[address] Could not get %s IP address on network %s.", svc.name, svc.network)
                return None
            raise ServiceStartError(
                f"Could not get {svc.name} IP address on network {svc.network}.", step=f"address {svc.name}"
            )
        logger.info("[address] %s is running at IP: %s", svc.name, address)
        return address

    def stop_services(self, stack: OrchestrationConfig, names: Sequence[str]) -> None:
        """
        Stops directly-run containers so the init system can take over their
        names and ports. Containers that are already gone are fine.
        """
        for name in self.resolver.shutdown_order(stack):
            if name not in names:
                continue
            svc = stack.services[name]
            stopped = self.runtime.stop(svc.container_name)
            if stopped.ok:
                logger.info("[handover] Stopped %s.", svc.container_name)
            elif is_missing(stopped):
                logger.info("[handover] %s was not running.", svc.container_name)
            else:
                raise ServiceStartError(
                    f"Could not stop {svc.container_name}: {stopped.error_text()}", step="handover"
                )


def _fmt(seconds: float) -> str:
    return f"{seconds:g}"
