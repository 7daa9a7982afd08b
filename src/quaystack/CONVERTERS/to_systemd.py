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
Generates systemd Quadlet ``.container`` units for the stack and hands them
to the user's systemd instance.
"""
import logging
import os
import time
from typing import Callable, List

from jinja2 import Template

from ..MODELS.errors import ActivationError, GeneratorFailure, ProvisionError
from ..MODELS.orchestration_config import OrchestrationConfig
from ..MODELS.results import OutcomeStatus, StepOutcome
from ..MODELS.service_definition import RestartPolicyCondition, ServiceDescriptor
from ..RUNNERS.init_system import SystemdUserManager

logger = logging.getLogger(__name__)

QUADLET_TEMPLATE = """\
[Unit]
Description={{ description }}
Wants=network-online.target
{% if depends_on %}
After=network-online.target {{ depends_on | join(' ') }}
BindsTo={{ depends_on | join(' ') }}
{% else %}
After=network-online.target
{% endif %}

[Container]
ContainerName={{ container_name }}
Image={{ image }}
Network={{ network }}
{% if ip %}
IP={{ ip }}
{% endif %}
{% for container_port, host_port in ports.items() %}
PublishPort={{ host_port }}:{{ container_port }}
{% endfor %}
{% if environment_file %}
EnvironmentFile={{ environment_file }}
{% endif %}
{% for volume in volumes %}
Volume={{ volume }}
{% endfor %}
{% if exec %}
Exec={{ exec | join(' ') }}
{% endif %}
{% if privileged %}
PodmanArgs=--privileged
{% endif %}
{% if restart or service_environment_file %}

[Service]
{% if service_environment_file %}
EnvironmentFile={{ service_environment_file }}
{% endif %}
{% if restart %}
Restart={{ restart }}
{% endif %}
{% if restart_sec %}
RestartSec={{ restart_sec }}
{% endif %}
{% endif %}

[Install]
WantedBy={{ wanted_by }}
"""


class QuadletGenerator:
    """
    Renders one Quadlet unit per service and activates the application unit.

    Dependency edges come from the descriptors' ``depends_on`` graph and are
    rendered as both ``After=`` (ordering) and ``BindsTo=`` (the dependent
    stops when a dependency stops).
    """

    def __init__(
        self,
        init: SystemdUserManager,
        unit_dir: str,
        reload_settle_delay: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initializes the generator.

        :param init: Client for the user's systemd instance.
        :param unit_dir: Directory Quadlet reads ``.container`` files from.
        :param reload_settle_delay: Seconds to let the generator run after a reload.
        """
        self.init = init
        self.unit_dir = unit_dir
        self.reload_settle_delay = reload_settle_delay
        self.sleep = sleep
        self.template = Template(QUADLET_TEMPLATE, trim_blocks=True, lstrip_blocks=True,
                                 keep_trailing_newline=True)

    def render(self, stack: OrchestrationConfig, svc: ServiceDescriptor) -> str:
        restart = svc.restart_policy.condition
        exec_args = svc.unit_command or svc.command
        # systemd expands ${VAR} in Exec= from the service environment only
        expands = any("${" in arg for arg in exec_args)
        return self.template.render(
            description=svc.description,
            depends_on=[dep.service_unit for dep in stack.dependencies_of(svc.name)],
            container_name=svc.container_name,
            image=svc.image,
            network=svc.network,
            ip=svc.ip,
            ports=svc.ports,
            environment_file=svc.environment_file,
            volumes=[mount.spec() for mount in svc.volumes],
            exec=exec_args,
            service_environment_file=svc.environment_file if expands else None,
            privileged=svc.privileged,
            restart=None if restart == RestartPolicyCondition.NO else restart.value,
            restart_sec=f"{svc.restart_policy.delay:g}" if svc.restart_policy.delay else None,
            wanted_by=svc.wanted_by,
        )

    def unit_path(self, svc: ServiceDescriptor) -> str:
        return os.path.join(self.unit_dir, svc.unit_file)

    def generate(self, stack: OrchestrationConfig) -> List[str]:
        """
        Writes a unit file for every service.

        :return: Paths of the written files.
        """
        logger.info("[generate] Creating Quadlet directory at %s...", self.unit_dir)
        written = []
        try:
            os.makedirs(self.unit_dir, exist_ok=True)
            for svc in stack.services.values():
                path = self.unit_path(svc)
                logger.info("[generate] Generating Quadlet file: %s", svc.unit_file)
                with open(path, "w") as f:
                    f.write(self.render(stack, svc))
                written.append(path)
        except OSError as e:
            raise GeneratorFailure(f"Could not write units to {self.unit_dir}: {e}") from e
        return written

    def activate(self, app: ServiceDescriptor) -> None:
        """
        Reloads systemd, checks that Quadlet produced the application's
        service unit, then enables and starts it. Its dependencies start with
        it through ``BindsTo=``.

        :raises GeneratorFailure: If the reload fails or the unit is missing.
        :raises ActivationError: If the unit fails to start.
        """
        logger.info("[activate] Reloading systemd user daemon...")
        reloaded = self.init.daemon_reload()
        if not reloaded.ok:
            raise GeneratorFailure(f"systemd daemon-reload failed: {reloaded.error_text()}")
        if self.reload_settle_delay:
            self.sleep(self.reload_settle_delay)

        logger.info("[activate] Checking if generator created the service files...")
        if not self.init.has_unit(app.service_unit):
            raise GeneratorFailure(
                f"systemd generator FAILED to create {app.service_unit}. "
                f"Check 'journalctl --user -xe' for errors."
            )
        logger.info("[activate] Generator check passed. Service file '%s' was created.", app.service_unit)

        logger.info("[activate] Enabling '%s' to start on boot...", app.service_unit)
        enabled = self.init.enable(app.service_unit)
        if not enabled.ok:
            # generated units cannot be enabled; [Install] already covers boot
            logger.warning("[activate] enable reported: %s (boot start comes from WantedBy=%s)",
                           enabled.error_text(), app.wanted_by)

        logger.info("[activate] Starting '%s' now...", app.service_unit)
        started = self.init.start(app.service_unit)
        if not started.ok:
            raise ActivationError(f"Could not start {app.service_unit}: {started.error_text()}")

    def remove(self, stack: OrchestrationConfig) -> StepOutcome:
        """
        Deletes the stack's unit files. A missing directory or file is noted,
        not an error.
        """
        if not os.path.isdir(self.unit_dir):
            note = f"unit directory {self.unit_dir} does not exist"
            logger.info("[remove-units] %s, skipping.", note)
            return StepOutcome(step="remove-units", status=OutcomeStatus.SKIPPED, note=note)

        logger.info("[remove-units] Removing Quadlet files from %s...", self.unit_dir)
        absent = []
        for svc in stack.services.values():
            path = self.unit_path(svc)
            try:
                os.remove(path)
            except FileNotFoundError:
                absent.append(svc.unit_file)
            except OSError as e:
                raise ProvisionError(f"Could not remove {path}: {e}", step="remove-units") from e
        if absent:
            note = f"already absent: {', '.join(absent)}"
            logger.info("[remove-units] %s", note)
            return StepOutcome(step="remove-units", status=OutcomeStatus.TOLERATED, note=note)
        logger.info("[remove-units] Quadlet files removed.")
        return StepOutcome(step="remove-units")
