"""
Volume management for the stack: host directories backing the services'
mounts, the persistent copy of the configuration file, and their removal.
"""
import logging
import os
import shutil
from typing import Iterable, List

from ..MODELS.errors import ProvisionError, SetupMissing
from ..MODELS.results import DirectoryResult
from ..MODELS.stack_config import StackConfig

logger = logging.getLogger(__name__)

STACK_SUBDIRS = ("postgres", "config", "storage")

class VolumeManager:
    """
    Creates and removes the host directory tree under the data root.
    """
    def __init__(self, config: StackConfig):
        """
        Initializes the volume manager.

        :param config: Validated stack configuration.
        """
        self.config = config

    def ensure_directories(self, root: str, subpaths: Iterable[str] = STACK_SUBDIRS) -> DirectoryResult:
        """
        Creates ``root/<subpath>`` for each subpath, with parents. Existing
        directories are left alone.

        :raises ProvisionError: If a directory cannot be created.
        """
        result = DirectoryResult()
        logger.info("[directories] Creating setup in: %s", root)
        for sub in subpaths:
            path = os.path.join(root, sub)
            if os.path.isdir(path):
                result.existing.append(path)
                continue
            try:
                os.makedirs(path, exist_ok=True)
            except OSError as e:
                raise ProvisionError(f"Could not create {path}: {e}", step="directories") from e
            result.created.append(path)
        logger.info("[directories] %d created, %d already present.", len(result.created), len(result.existing))
        return result

    def install_env_file(self) -> str:
        """
        Copies the operator's configuration file into the config directory so
        generated units keep working if the original is moved.

        :return: Path of the persistent copy.
        """
        source = str(self.config.env_file)
        target = str(self.config.persistent_env_file)
        if os.path.abspath(source) == os.path.abspath(target):
            return target
        logger.info("[directories] Copying %s to permanent location at %s...", source, target)
        try:
            shutil.copyfile(source, target)
            os.chmod(target, 0o600)
        except OSError as e:
            raise ProvisionError(f"Could not copy {source} to {target}: {e}", step="directories") from e
        return target

    def verify_installed(self) -> None:
        """
        Checks that a previous install left its directories and settings behind.

        :raises SetupMissing: Naming the first missing path.
        """
        logger.info("[setup-check] Checking for existing setup in: %s", self.config.data_root)
        required: List[str] = [
            str(self.config.config_dir),
            str(self.config.settings_file),
            str(self.config.postgres_dir),
            str(self.config.storage_dir),
        ]
        for path in required:
            if not os.path.exists(path):
                raise SetupMissing(f"{path} not found. Please run the install first.")
        logger.info("[setup-check] Existing setup found.")

    def destroy(self) -> bool:
        """
        Recursively deletes the data root.

        :return: False if the root was already absent.
        :raises ProvisionError: If deletion fails part-way.
        """
        root = str(self.config.data_root)
        if not os.path.exists(root):
            logger.warning("[delete-data] %s already absent.", root)
            return False
        try:
            shutil.rmtree(root)
        except OSError as e:
            raise ProvisionError(f"Could not delete {root}: {e}", step="delete-data") from e
        logger.info("[delete-data] All data deleted from %s.", root)
        return True
