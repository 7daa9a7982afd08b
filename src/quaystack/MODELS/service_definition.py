"""
Models for defining services, including restart policies, readiness checks, and mounts.
"""
from typing import List, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum

class ServiceRole(str, Enum):
    """
    The layer a service occupies in the stack.
    """
    DATASTORE = "datastore"
    CACHE = "cache"
    APPLICATION = "application"

class RestartPolicyCondition(str, Enum):
    """
    Conditions under which the init system restarts a service.
    Values match systemd's ``Restart=`` setting.
    """
    NO = "no"
    ALWAYS = "always"
    ON_FAILURE = "on-failure"

class RestartPolicy(BaseModel):
    """
    Defines how a service should be restarted on failure or exit.
    """
    model_config = ConfigDict(frozen=True)

    condition: RestartPolicyCondition = RestartPolicyCondition.NO
    delay: float = 0.0

class ReadinessCheck(BaseModel):
    """
    A side-effect free probe run inside a service's container.

    Succeeds when the command exits zero and, if ``expect_output`` is set,
    its output contains that token.
    """
    model_config = ConfigDict(frozen=True)

    command: List[str]
    expect_output: Optional[str] = None
    description: str = ""

    def is_satisfied(self, returncode: int, output: str) -> bool:
        if returncode != 0:
            return False
        if self.expect_output is not None:
            return self.expect_output in output
        return True

class VolumeMount(BaseModel):
    """
    Defines a mapping between a host path and a service path.
    """
    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    read_only: bool = False
    relabel: bool = True  # SELinux private label (":Z")

    def spec(self) -> str:
        """
        Renders the mount in runtime ``-v`` / unit ``Volume=`` form.
        """
        options = []
        if self.read_only:
            options.append("ro")
        if self.relabel:
            options.append("Z")
        suffix = f":{','.join(options)}" if options else ""
        return f"{self.source}:{self.target}{suffix}"

class ServiceDescriptor(BaseModel):
    """
    The full definition of a single managed service.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    role: ServiceRole
    description: str
    image: str
    unit_name: str

    # Execution
    command: List[str] = []
    unit_command: List[str] = []
    privileged: bool = False

    # Environment
    environment: Dict[str, str] = Field(default_factory=dict, repr=False)
    environment_file: Optional[str] = None

    # Networking
    network: str
    ip: Optional[str] = None
    ports: Dict[int, int] = {}  # {container: host}

    # Storage
    volumes: List[VolumeMount] = []

    # Lifecycle
    depends_on: List[str] = []
    readiness: Optional[ReadinessCheck] = None
    post_start: List[List[str]] = []
    settle_delay: float = 0.0
    restart_policy: RestartPolicy = Field(default_factory=RestartPolicy)
    wanted_by: str = "default.target"

    @property
    def container_name(self) -> str:
        """
        Shared by the directly-run container and the generated unit, so either
        path can be stopped by the same name.
        """
        return self.unit_name

    @property
    def service_unit(self) -> str:
        return f"{self.unit_name}.service"

    @property
    def unit_file(self) -> str:
        return f"{self.unit_name}.container"
