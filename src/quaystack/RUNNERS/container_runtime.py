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
Thin client for the podman command line.

Each method issues exactly one synchronous podman call and returns its
CommandResult. Interpreting failures is left to the managers.
"""
from typing import List, Optional

from .process_runner import CommandResult, CommandRunner
from ..MODELS.service_definition import ServiceDescriptor

MISSING_MARKERS = ("no such container", "no such network", "not found", "no container with name")


def is_missing(result: CommandResult) -> bool:
    """True when a failed call only reports that its target does not exist."""
    text = result.output.lower()
    return any(marker in text for marker in MISSING_MARKERS)


class PodmanRuntime:
    """
    Issues network, container and exec calls against podman.
    """

    def __init__(self, runner: CommandRunner, binary: str = "podman"):
        self.runner = runner
        self.binary = binary

    def _call(self, *args: str) -> CommandResult:
        return self.runner.run([self.binary, *args])

    # Networks

    def network_exists(self, name: str) -> CommandResult:
        """Exit 0 when the network exists, 1 when it does not."""
        return self._call("network", "exists", name)

    def network_subnets(self, name: str) -> List[str]:
        result = self._call(
            "network", "inspect", name,
            "--format", "{{range .Subnets}}{{.Subnet}} {{end}}",
        )
        if not result.ok:
            return []
        return result.stdout.split()

    def create_network(self, name: str, subnet: Optional[str] = None) -> CommandResult:
        args = ["network", "create"]
        if subnet:
            args += ["--subnet", subnet]
        args.append(name)
        return self._call(*args)

    def remove_network(self, name: str) -> CommandResult:
        return self._call("network", "rm", name)

    # Containers

    def run_args(self, svc: ServiceDescriptor) -> List[str]:
        """
        Builds the ``podman run`` arguments for a descriptor.
        ``--replace`` discards any earlier container with the same name and
        ``--rm`` removes this one once stopped, freeing the name again.
        """
        args = ["run", "-d", "--rm", "--replace", "--name", svc.container_name, "--network", svc.network]
        if svc.ip:
            args += ["--ip", svc.ip]
        for key, value in svc.environment.items():
            args += ["-e", f"{key}={value}"]
        for container_port, host_port in svc.ports.items():
            args += ["-p", f"{host_port}:{container_port}"]
        for mount in svc.volumes:
            args += ["-v", mount.spec()]
        if svc.privileged:
            args.append("--privileged=true")
        args.append(svc.image)
        args += svc.command
        return args

    def run(self, svc: ServiceDescriptor) -> CommandResult:
        return self._call(*self.run_args(svc))

    def exec(self, name: str, command: List[str]) -> CommandResult:
        return self._call("exec", name, *command)

    def stop(self, name: str) -> CommandResult:
        return self._call("stop", name)

    def inspect_address(self, name: str, network: str) -> Optional[str]:
        """
        Returns the container's address on ``network``, or None if unknown.
        """
        template = '{{(index .NetworkSettings.Networks "%s").IPAddress}}' % network
        result = self._call("inspect", name, "-f", template)
        address = result.stdout.strip() if result.ok else ""
        if not address or address == "<no value>":
            return None
        return address
