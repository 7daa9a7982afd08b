"""
Unit tests for Quadlet unit generation and activation.
"""
import pytest

from quaystack.CONVERTERS.stack_builder import StackBuilder
from quaystack.CONVERTERS.to_systemd import QuadletGenerator
from quaystack.MODELS.errors import ActivationError, GeneratorFailure, ProvisionError
from quaystack.MODELS.results import OutcomeStatus
from quaystack.RUNNERS.init_system import SystemdUserManager


@pytest.fixture
def stack(stack_config):
    return StackBuilder(stack_config).build()


@pytest.fixture
def unit_dir(tmp_path):
    return tmp_path / "units"


@pytest.fixture
def generator(runner, sleeper, unit_dir):
    return QuadletGenerator(SystemdUserManager(runner), str(unit_dir), reload_settle_delay=2.0, sleep=sleeper)


def lines(text):
    return text.splitlines()


def section(text, name):
    """Lines of one ``[name]`` section, without the header."""
    body, inside = [], False
    for line in text.splitlines():
        if line.startswith("["):
            inside = line == f"[{name}]"
            continue
        if inside:
            body.append(line)
    return body


class TestRender:

    def test_application_unit(self, generator, stack, stack_config):
        unit = lines(generator.render(stack, stack.services["quay"]))
        assert "After=network-online.target quay-postgres.service quay-redis.service" in unit
        assert "BindsTo=quay-postgres.service quay-redis.service" in unit
        assert "ContainerName=quay-quay" in unit
        assert "Image=quay.io/projectquay/quay:latest" in unit
        assert "Network=app-net" in unit
        assert "PublishPort=8080:8080" in unit
        assert "PodmanArgs=--privileged" in unit
        assert f"Volume={stack_config.config_dir}:/conf/stack:Z" in unit
        assert f"Volume={stack_config.storage_dir}:/datastorage:Z" in unit
        assert "WantedBy=default.target" in unit
        assert not any(l.startswith("IP=") for l in unit)

    def test_dependency_units(self, generator, stack, stack_config):
        postgres = lines(generator.render(stack, stack.services["postgres"]))
        assert "After=network-online.target" in postgres
        assert not any(l.startswith("BindsTo=") for l in postgres)
        assert "IP=10.90.0.10" in postgres
        assert f"EnvironmentFile={stack_config.persistent_env_file}" in postgres
        assert "Restart=on-failure" in postgres

    def test_secrets_stay_out_of_units(self, generator, stack):
        redis = generator.render(stack, stack.services["redis"])
        assert "Exec=redis-server --requirepass ${REDIS_PASS}" in lines(redis)
        assert "r3dis$ecret" not in redis
        assert "p@ss!word" not in generator.render(stack, stack.services["postgres"])

    def test_exec_variables_have_a_systemd_source(self, generator, stack, stack_config):
        redis = generator.render(stack, stack.services["redis"])
        service = section(redis, "Service")
        assert f"EnvironmentFile={stack_config.persistent_env_file}" in service
        assert "Restart=on-failure" in service

    def test_no_service_environment_without_variables(self, generator, stack):
        for name in ("postgres", "quay"):
            service = section(generator.render(stack, stack.services[name]), "Service")
            assert not any(l.startswith("EnvironmentFile=") for l in service)

    def test_relations_sit_together(self, generator, stack):
        unit = section(generator.render(stack, stack.services["quay"]), "Unit")
        after = unit.index("After=network-online.target quay-postgres.service quay-redis.service")
        assert unit[after + 1] == "BindsTo=quay-postgres.service quay-redis.service"

    def test_sections(self, generator, stack):
        unit = generator.render(stack, stack.services["quay"])
        assert unit.startswith("[Unit]\n")
        assert unit.index("[Unit]") < unit.index("[Container]") < unit.index("[Service]") < unit.index("[Install]")
        assert unit.endswith("WantedBy=default.target\n")


class TestGenerate:

    def test_writes_three_units(self, generator, stack, unit_dir):
        written = generator.generate(stack)
        assert sorted(p.split("/")[-1] for p in written) == [
            "quay-postgres.container", "quay-quay.container", "quay-redis.container",
        ]
        assert (unit_dir / "quay-quay.container").read_text().startswith("[Unit]")

    def test_regenerate_overwrites(self, generator, stack, unit_dir):
        generator.generate(stack)
        (unit_dir / "quay-quay.container").write_text("stale")
        generator.generate(stack)
        assert (unit_dir / "quay-quay.container").read_text() != "stale"

    def test_unwritable_directory(self, runner, stack, tmp_path):
        blocker = tmp_path / "units"
        blocker.write_text("a file")
        with pytest.raises(GeneratorFailure):
            QuadletGenerator(SystemdUserManager(runner), str(blocker)).generate(stack)


class TestActivate:

    def test_activation_sequence(self, healthy_runner, sleeper, generator, stack):
        generator.activate(stack.services["quay"])
        assert healthy_runner.calls == [
            ["systemctl", "--user", "daemon-reload"],
            ["systemctl", "--user", "list-unit-files", "--no-legend", "--no-pager"],
            ["systemctl", "--user", "enable", "quay-quay.service"],
            ["systemctl", "--user", "start", "quay-quay.service"],
        ]
        assert sleeper.calls == [2.0]

    def test_generator_did_not_produce_unit(self, runner, generator, stack):
        runner.on("systemctl", "--user", "list-unit-files", stdout="other.service enabled enabled\n")
        with pytest.raises(GeneratorFailure, match="quay-quay.service"):
            generator.activate(stack.services["quay"])
        assert not runner.calls_starting("systemctl", "--user", "start")

    def test_unit_name_prefix_is_not_enough(self, runner, generator, stack):
        runner.on("systemctl", "--user", "list-unit-files", stdout="quay-quay.service.bak generated -\n")
        with pytest.raises(GeneratorFailure):
            generator.activate(stack.services["quay"])

    def test_reload_failure(self, runner, generator, stack):
        runner.on("systemctl", "--user", "daemon-reload", returncode=1, stderr="Failed to connect to bus")
        with pytest.raises(GeneratorFailure, match="bus"):
            generator.activate(stack.services["quay"])

    def test_enable_failure_is_a_warning(self, healthy_runner, generator, stack, caplog):
        healthy_runner.on("systemctl", "--user", "enable", returncode=1,
                          stderr="Failed to enable unit: Unit is transient or generated.")
        generator.activate(stack.services["quay"])
        assert healthy_runner.calls_starting("systemctl", "--user", "start")
        assert "transient or generated" in caplog.text

    def test_start_failure(self, healthy_runner, generator, stack):
        healthy_runner.on("systemctl", "--user", "start", returncode=1, stderr="Job failed")
        with pytest.raises(ActivationError) as exc:
            generator.activate(stack.services["quay"])
        assert exc.value.step == "activate"


class TestRemove:

    def test_removes_units(self, generator, stack, unit_dir):
        generator.generate(stack)
        outcome = generator.remove(stack)
        assert outcome.status == OutcomeStatus.OK
        assert list(unit_dir.iterdir()) == []

    def test_missing_directory_skipped(self, generator, stack):
        assert generator.remove(stack).status == OutcomeStatus.SKIPPED

    def test_missing_files_tolerated(self, generator, stack, unit_dir):
        generator.generate(stack)
        (unit_dir / "quay-redis.container").unlink()
        outcome = generator.remove(stack)
        assert outcome.status == OutcomeStatus.TOLERATED
        assert "quay-redis.container" in outcome.note

    def test_unremovable_file(self, generator, stack, unit_dir):
        generator.generate(stack)
        (unit_dir / "quay-quay.container").unlink()
        (unit_dir / "quay-quay.container").mkdir()
        with pytest.raises(ProvisionError):
            generator.remove(stack)
