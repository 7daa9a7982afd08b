"""
Unit tests for network provisioning.
"""
import pytest

from quaystack.MANAGERS.network_manager import NetworkManager
from quaystack.MODELS.errors import ProvisionError
from quaystack.MODELS.results import OutcomeStatus, ProvisionStatus
from quaystack.RUNNERS.container_runtime import PodmanRuntime


@pytest.fixture
def manager(runner):
    return NetworkManager(PodmanRuntime(runner))


class TestEnsureNetwork:

    def test_creates_absent_network_with_subnet(self, runner, manager):
        runner.on("podman", "network", "exists", returncode=1)
        result = manager.ensure_network("app-net", "10.90.0.0/24")
        assert result.status == ProvisionStatus.CREATED
        assert ["podman", "network", "create", "--subnet", "10.90.0.0/24", "app-net"] in runner.calls

    def test_creates_without_subnet(self, runner, manager):
        runner.on("podman", "network", "exists", returncode=1)
        result = manager.ensure_network("app-net")
        assert result.status == ProvisionStatus.CREATED
        assert ["podman", "network", "create", "app-net"] in runner.calls

    def test_existing_network_is_left_alone(self, runner, manager):
        runner.on("podman", "network", "inspect", stdout="10.90.0.0/24 \n")
        result = manager.ensure_network("app-net", "10.90.0.0/24")
        assert result.status == ProvisionStatus.EXISTS
        assert not runner.calls_starting("podman", "network", "create")
        assert not runner.calls_starting("podman", "network", "rm")

    def test_second_call_is_a_no_op(self, runner, manager):
        runner.on("podman", "network", "exists", responses=[(1, "", ""), (0, "", "")])
        runner.on("podman", "network", "inspect", stdout="10.90.0.0/24 ")
        first = manager.ensure_network("app-net", "10.90.0.0/24")
        second = manager.ensure_network("app-net", "10.90.0.0/24")
        assert first.status == ProvisionStatus.CREATED
        assert second.status == ProvisionStatus.EXISTS
        assert len(runner.calls_starting("podman", "network", "create")) == 1

    def test_subnet_mismatch_is_reported(self, runner, manager, caplog):
        runner.on("podman", "network", "inspect", stdout="10.88.0.0/16 ")
        result = manager.ensure_network("app-net", "10.90.0.0/24")
        assert result.status == ProvisionStatus.SUBNET_MISMATCH
        assert result.mismatched
        assert result.live_subnets == ["10.88.0.0/16"]
        assert "10.88.0.0/16" in caplog.text
        assert not runner.calls_starting("podman", "network", "create")

    def test_existence_check_failure(self, runner, manager):
        runner.on("podman", "network", "exists", returncode=125, stderr="cannot connect")
        with pytest.raises(ProvisionError) as exc:
            manager.ensure_network("app-net")
        assert exc.value.step == "network"

    def test_create_failure(self, runner, manager):
        runner.on("podman", "network", "exists", returncode=1)
        runner.on("podman", "network", "create", returncode=125, stderr="subnet already used")
        with pytest.raises(ProvisionError, match="subnet already used"):
            manager.ensure_network("app-net", "10.90.0.0/24")


class TestRemoveNetwork:

    def test_removed(self, runner, manager):
        outcome = manager.remove_network("app-net")
        assert outcome.status == OutcomeStatus.OK
        assert ["podman", "network", "rm", "app-net"] in runner.calls

    def test_absent_is_tolerated(self, runner, manager):
        runner.on("podman", "network", "rm", returncode=1,
                  stderr="Error: unable to find network with name or ID app-net: network not found")
        outcome = manager.remove_network("app-net")
        assert outcome.status == OutcomeStatus.TOLERATED

    def test_other_failure_is_fatal(self, runner, manager):
        runner.on("podman", "network", "rm", returncode=2, stderr="network is in use by container")
        with pytest.raises(ProvisionError):
            manager.remove_network("app-net")
