"""
Models for the validated stack configuration and orchestrator settings.
"""
import ipaddress
import os
from pathlib import Path
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

DEFAULT_REDIS_VERSION = "5.0.7"
DEFAULT_QUAY_IMAGE = "quay.io/projectquay/quay:latest"
DEFAULT_UNIT_DIR = os.path.join("~", ".config", "containers", "systemd")


class StackConfig(BaseModel):
    """
    Validated parameters for one registry stack.

    Built once by the config loader and passed to every component. Frozen, so
    no step can change what a later step sees.
    """
    model_config = ConfigDict(frozen=True)

    # Network
    network: str = Field(min_length=1)
    subnet: Optional[str] = None

    # Datastore
    postgres_db: str = Field(min_length=1)
    postgres_user: str = Field(min_length=1)
    postgres_password: str = Field(min_length=1, repr=False)
    pg_version: str = Field(min_length=1)
    pg_ip: Optional[str] = None

    # Cache
    redis_password: str = Field(min_length=1, repr=False)
    redis_version: str = DEFAULT_REDIS_VERSION
    redis_ip: Optional[str] = None

    # Application
    quay_image: str = DEFAULT_QUAY_IMAGE

    # Storage
    data_root: Path
    env_file: Path

    @field_validator("data_root", "env_file")
    @classmethod
    def _absolute(cls, value: Path) -> Path:
        return Path(os.path.abspath(os.path.expanduser(str(value))))

    @field_validator("subnet")
    @classmethod
    def _valid_subnet(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        ipaddress.ip_network(value, strict=False)
        return value

    @field_validator("pg_ip", "redis_ip")
    @classmethod
    def _valid_address(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        if value is None:
            return value
        address = ipaddress.ip_address(value)
        # subnet is declared first, so it is already validated here
        subnet = info.data.get("subnet")
        if subnet and address not in ipaddress.ip_network(subnet, strict=False):
            raise ValueError(f"{info.field_name} {value} is outside subnet {subnet}")
        return value

    # Derived paths

    @property
    def postgres_dir(self) -> Path:
        return self.data_root / "postgres"

    @property
    def config_dir(self) -> Path:
        return self.data_root / "config"

    @property
    def storage_dir(self) -> Path:
        return self.data_root / "storage"

    @property
    def persistent_env_file(self) -> Path:
        return self.config_dir / "quay.env"

    @property
    def checkpoint_archive(self) -> Path:
        return self.config_dir / "quay-config.tar.gz"

    @property
    def settings_file(self) -> Path:
        return self.config_dir / "config.yaml"

    @property
    def postgres_image(self) -> str:
        return f"docker.io/library/postgres:{self.pg_version}"

    @property
    def redis_image(self) -> str:
        return f"docker.io/library/redis:{self.redis_version}"


class OrchestratorSettings(BaseModel):
    """
    Host-side tunables that are not part of the stack itself.
    """
    model_config = ConfigDict(frozen=True)

    runtime_binary: str = "podman"
    init_binary: str = "systemctl"
    unit_dir: Path = Path(DEFAULT_UNIT_DIR)
    readiness_attempts: int = Field(default=30, ge=1)
    readiness_interval: float = Field(default=2.0, ge=0)
    app_settle_delay: float = Field(default=10.0, ge=0)
    reload_settle_delay: float = Field(default=2.0, ge=0)

    @field_validator("unit_dir")
    @classmethod
    def _expand(cls, value: Path) -> Path:
        return Path(os.path.expanduser(str(value)))
