"""
Network management for the stack: idempotent creation and removal of the
container network.
"""
import ipaddress
import logging
from typing import List, Optional

from ..MODELS.errors import ProvisionError
from ..MODELS.results import NetworkResult, ProvisionStatus, StepOutcome, OutcomeStatus
from ..RUNNERS.container_runtime import PodmanRuntime, is_missing

logger = logging.getLogger(__name__)

class NetworkManager:
    """
    Ensures the stack's network exists, without ever replacing one.
    """
    def __init__(self, runtime: PodmanRuntime):
        """
        Initializes the network manager.

        :param runtime: Container runtime client.
        """
        self.runtime = runtime

    def ensure_network(self, name: str, subnet: Optional[str] = None) -> NetworkResult:
        """
        Creates the network if absent.

        An existing network is accepted as-is. If its subnet differs from the
        requested one the result says so and a warning is logged, but the
        network is not touched.

        :param name: Network name.
        :param subnet: Requested subnet in CIDR form; runtime default if None.
        :return: CREATED, EXISTS or SUBNET_MISMATCH.
        :raises ProvisionError: If the existence check or creation fails.
        """
        logger.info("[network] Ensuring podman network '%s' exists...", name)
        exists = self.runtime.network_exists(name)
        if exists.returncode not in (0, 1):
            raise ProvisionError(f"Could not check network {name}: {exists.error_text()}", step="network")

        if exists.ok:
            live = self.runtime.network_subnets(name)
            if subnet and live and not self._matches(subnet, live):
                logger.warning(
                    "[network] Network '%s' already exists with subnet %s, not the configured %s. "
                    "Leaving it unchanged; remove it to recreate.",
                    name, ", ".join(live), subnet,
                )
                return NetworkResult(name=name, status=ProvisionStatus.SUBNET_MISMATCH,
                                     requested_subnet=subnet, live_subnets=live)
            logger.info("[network] Network '%s' already exists.", name)
            return NetworkResult(name=name, status=ProvisionStatus.EXISTS,
                                 requested_subnet=subnet, live_subnets=live)

        created = self.runtime.create_network(name, subnet)
        if not created.ok:
            raise ProvisionError(f"Could not create network {name}: {created.error_text()}", step="network")
        if subnet:
            logger.info("[network] Network '%s' created with subnet %s.", name, subnet)
        else:
            logger.info("[network] Network '%s' created.", name)
        return NetworkResult(name=name, status=ProvisionStatus.CREATED, requested_subnet=subnet,
                             live_subnets=[subnet] if subnet else [])

    def remove_network(self, name: str) -> StepOutcome:
        """
        Removes the network, treating an absent one as already done.

        :raises ProvisionError: If removal fails for any other reason.
        """
        result = self.runtime.remove_network(name)
        if result.ok:
            logger.info("[network] Network '%s' removed.", name)
            return StepOutcome(step="remove-network")
        if not is_missing(result):
            raise ProvisionError(f"Could not remove network {name}: {result.error_text()}",
                                 step="remove-network")
        note = f"network {name} already absent"
        logger.warning("[network] %s", note)
        return StepOutcome(step="remove-network", status=OutcomeStatus.TOLERATED, note=note)

    @staticmethod
    def _matches(subnet: str, live: List[str]) -> bool:
        wanted = ipaddress.ip_network(subnet, strict=False)
        for value in live:
            try:
                if ipaddress.ip_network(value, strict=False) == wanted:
                    return True
            except ValueError:
                continue
        return False
