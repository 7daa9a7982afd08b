"""
Unit tests for readiness probing.
"""
import pytest

from quaystack.CONVERTERS.stack_builder import StackBuilder
from quaystack.MANAGERS.health_monitor import HealthStatus, ReadinessProber
from quaystack.MODELS.errors import ReadinessTimeout
from quaystack.MODELS.service_definition import ReadinessCheck
from quaystack.RUNNERS.container_runtime import PodmanRuntime


@pytest.fixture
def stack(stack_config):
    return StackBuilder(stack_config).build()


@pytest.fixture
def prober(runner, sleeper):
    return ReadinessProber(PodmanRuntime(runner), max_attempts=5, interval=2.0, sleep=sleeper)


class TestReadinessProber:

    def test_ready_on_first_attempt(self, runner, sleeper, prober, stack):
        runner.on("podman", "exec", "quay-redis", stdout="PONG\n")
        result = prober.wait_ready(stack.services["redis"])
        assert result.attempts == 1
        assert result.output == "PONG"
        assert sleeper.calls == []

    def test_ready_after_retries(self, runner, sleeper, prober, stack):
        runner.on("podman", "exec", "quay-postgres", responses=[
            (2, "", "could not connect to server"),
            (2, "", "could not connect to server"),
            (0, "", ""),
        ])
        result = prober.wait_ready(stack.services["postgres"])
        assert result.attempts == 3
        assert sleeper.calls == [2.0, 2.0]

    def test_timeout_is_bounded(self, runner, sleeper, prober, stack):
        runner.on("podman", "exec", "quay-redis", returncode=1, stderr="Connection refused")
        with pytest.raises(ReadinessTimeout) as exc:
            prober.wait_ready(stack.services["redis"])
        assert exc.value.service == "redis"
        assert exc.value.attempts == 5
        assert exc.value.step == "readiness"
        assert len(runner.calls_starting("podman", "exec")) == 5
        assert sleeper.calls == [2.0] * 4

    def test_overrides(self, runner, sleeper, prober, stack):
        runner.on("podman", "exec", "quay-redis", returncode=1)
        with pytest.raises(ReadinessTimeout):
            prober.wait_ready(stack.services["redis"], max_attempts=2, interval=0.5)
        assert len(runner.calls) == 2
        assert sleeper.calls == [0.5]

    def test_expected_output_required(self, runner, prober, stack):
        runner.on("podman", "exec", "quay-redis", stdout="NOAUTH Authentication required.")
        attempt = prober.check_once(stack.services["redis"], stack.services["redis"].readiness)
        assert attempt.status == HealthStatus.STARTING
        assert not attempt.ready

    def test_probe_runs_inside_container(self, runner, prober, stack):
        runner.on("podman", "exec", "quay-redis", stdout="PONG")
        prober.wait_ready(stack.services["redis"])
        assert runner.calls[0] == ["podman", "exec", "quay-redis", "redis-cli", "-a", "r3dis$ecret", "ping"]

    def test_custom_check(self, runner, prober, stack):
        runner.on("podman", "exec", "quay-quay", stdout="ok")
        check = ReadinessCheck(command=["true"])
        result = prober.wait_ready(stack.services["quay"], check=check)
        assert result.attempts == 1

    def test_no_check_is_an_error(self, prober, stack):
        with pytest.raises(ValueError):
            prober.wait_ready(stack.services["quay"])
