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
Loading and validation of the stack's backing configuration file (quay.env).
"""
import logging
import os
from typing import Dict, Optional
from pydantic import ValidationError

from .env_parser import EnvParser
from ..MODELS.stack_config import StackConfig
from ..MODELS.errors import ConfigFileNotFound, InvalidConfig, MissingConfig

logger = logging.getLogger(__name__)

REQUIRED_KEYS = (
    "POSTGRES_DB",
    "POSTGRES_USER",
    "POSTGRES_PASSWORD",
    "PG_VERSION",
    "REDIS_PASS",
    "QUAY_NET",
    "QUAY",
)

SECRET_KEYS = ("POSTGRES_PASSWORD", "REDIS_PASS")

# backing store key -> StackConfig field
FIELD_MAP = {
    "POSTGRES_DB": "postgres_db",
    "POSTGRES_USER": "postgres_user",
    "POSTGRES_PASSWORD": "postgres_password",
    "PG_VERSION": "pg_version",
    "PG_IP": "pg_ip",
    "REDIS_PASS": "redis_password",
    "REDIS_VERSION": "redis_version",
    "REDIS_IP": "redis_ip",
    "QUAY_IMAGE": "quay_image",
    "QUAY_NET": "network",
    "QUAY_NET_SUBNET": "subnet",
    "QUAY": "data_root",
}
KEY_FOR_FIELD = {field: key for key, field in FIELD_MAP.items()}


class ConfigLoader:
    """
    Builds a StackConfig from a key-value file.
    """
    def __init__(self, base_dir: Optional[str] = None):
        """
        :param base_dir: Directory that a relative ``QUAY`` data root is
            resolved against. Defaults to the config file's directory.
        """
        self.base_dir = base_dir

    def load(self, path: str) -> StackConfig:
        """
        Reads, checks and validates the configuration file.

        :param path: Path to the key-value file.
        :return: The validated, immutable configuration.
        :raises ConfigError: On a missing file, a missing or empty required
            key, an unquoted secret or an invalid value.
        """
        path = os.path.abspath(os.path.expanduser(path))
        if not os.path.isfile(path):
            raise ConfigFileNotFound(path)

        with open(path, 'r') as f:
            content = f.read()

        logger.info("[config] Checking %s for unquoted passwords...", path)
        EnvParser.check_quoting(content, SECRET_KEYS)

        logger.info("[config] Loading configuration from %s...", path)
        values = EnvParser.parse_from_string(content)
        return self.from_values(values, path)

    def from_values(self, values: Dict[str, str], path: str) -> StackConfig:
        for key in REQUIRED_KEYS:
            if not values.get(key, "").strip():
                raise MissingConfig(key, path)

        fields = {}
        for key, field in FIELD_MAP.items():
            value = values.get(key, "").strip() if key not in SECRET_KEYS else values.get(key, "")
            if value:
                fields[field] = value

        root = fields["data_root"]
        if not os.path.isabs(os.path.expanduser(root)):
            fields["data_root"] = os.path.join(self.base_dir or os.path.dirname(path), root)
        fields["env_file"] = path

        try:
            config = StackConfig(**fields)
        except ValidationError as e:
            error = e.errors()[0]
            loc = error["loc"][0] if error["loc"] else ""
            key = KEY_FOR_FIELD.get(str(loc), str(loc) or "config")
            raise InvalidConfig(key, error["msg"]) from e

        logger.info("[config] All variables loaded successfully.")
        return config

