"""
Unit tests for the manual configuration checkpoint.
"""
import pytest

from quaystack.MANAGERS.checkpoint import GATE_PROMPT, CheckpointCoordinator
from quaystack.MODELS.errors import CheckpointArtifactMissing

ADDRESSES = {"postgres": "10.90.0.10", "redis": "10.90.0.11"}


class Operator:
    """Stands in for the person at the terminal."""

    def __init__(self, action=None):
        self.prompts = []
        self.action = action

    def __call__(self, message):
        self.prompts.append(message)
        if self.action:
            self.action()


class TestInstructions:

    def test_live_values(self, stack_config):
        text = CheckpointCoordinator(stack_config).render_instructions(ADDRESSES)
        assert "Host:      10.90.0.10" in text
        assert "Redis Hostname:  10.90.0.11" in text
        assert "User:      quayuser" in text
        assert "Password:  p@ss!word" in text
        assert "Database:  quay" in text
        assert "Redis Password:  r3dis$ecret" in text
        assert "--network app-net" in text
        assert str(stack_config.checkpoint_archive) in text
        assert "'quay-config.tar.gz'" in text

    def test_runtime_binary(self, stack_config):
        text = CheckpointCoordinator(stack_config, runtime_binary="/opt/bin/podman").render_instructions(ADDRESSES)
        assert "/opt/bin/podman run --rm -it --name quay_config" in text

    def test_missing_address(self, stack_config):
        with pytest.raises(KeyError):
            CheckpointCoordinator(stack_config).render_instructions({"postgres": "10.90.0.10"})


class TestGate:

    def test_artifact_present(self, stack_config, tmp_path):
        artifact = tmp_path / "bundle.tar.gz"
        shown = []
        operator = Operator(lambda: artifact.write_bytes(b"data"))
        coordinator = CheckpointCoordinator(stack_config, wait_for_operator=operator, echo=shown.append)
        assert coordinator.run("do the thing", str(artifact)) == str(artifact)
        assert shown == ["do the thing"]
        assert operator.prompts == [GATE_PROMPT]

    def test_artifact_missing(self, stack_config, tmp_path):
        coordinator = CheckpointCoordinator(stack_config, wait_for_operator=Operator(), echo=lambda _: None)
        with pytest.raises(CheckpointArtifactMissing) as exc:
            coordinator.run("do the thing", str(tmp_path / "absent.tar.gz"))
        assert exc.value.step == "checkpoint"

    def test_directory_is_not_an_artifact(self, stack_config, tmp_path):
        coordinator = CheckpointCoordinator(stack_config, wait_for_operator=Operator(), echo=lambda _: None)
        with pytest.raises(CheckpointArtifactMissing):
            coordinator.run("do the thing", str(tmp_path))

    def test_default_artifact_path(self, stack_config):
        stack_config.config_dir.mkdir(parents=True)
        operator = Operator(lambda: stack_config.checkpoint_archive.write_bytes(b"x"))
        coordinator = CheckpointCoordinator(stack_config, wait_for_operator=operator, echo=lambda _: None)
        assert coordinator.run("go") == str(stack_config.checkpoint_archive)
