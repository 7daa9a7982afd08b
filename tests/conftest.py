"""
Shared fixtures: a scripted stand-in for podman and systemctl, a recording
sleeper, and a valid stack configuration on disk.
"""
import io
import tarfile

import pytest

from quaystack.MODELS.stack_config import OrchestratorSettings
from quaystack.PARSERS.config_loader import ConfigLoader
from quaystack.RUNNERS.process_runner import CommandResult, CommandRunner


class FakeRunner(CommandRunner):
    """
    Records every command and answers from rules registered with ``on``.

    A rule matches when the command starts with its prefix; the newest
    matching rule wins. A rule with several responses hands them out in turn
    and then keeps repeating the last one. Unmatched commands succeed with no
    output.
    """

    def __init__(self, available=("podman", "systemctl")):
        super().__init__()
        self.calls = []
        self.rules = []
        self.available = set(available)

    def on(self, *prefix, returncode=0, stdout="", stderr="", responses=None):
        if responses is None:
            responses = [(returncode, stdout, stderr)]
        self.rules.append((list(prefix), list(responses)))
        return self

    def which(self, binary):
        return f"/usr/bin/{binary}" if binary in self.available else None

    def run(self, args):
        args = list(args)
        self.calls.append(args)
        for prefix, responses in reversed(self.rules):
            if args[:len(prefix)] == prefix:
                code, out, err = responses.pop(0) if len(responses) > 1 else responses[0]
                return CommandResult(args=args, returncode=code, stdout=out, stderr=err)
        return CommandResult(args=args, returncode=0)

    def calls_starting(self, *prefix):
        return [c for c in self.calls if c[:len(prefix)] == list(prefix)]

    def index_of(self, *prefix):
        for i, call in enumerate(self.calls):
            if call[:len(prefix)] == list(prefix):
                return i
        raise AssertionError(f"{' '.join(prefix)} was never run")


class Sleeper:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


def make_bundle(path, files):
    """Writes a gzipped tar holding ``files`` ({name: text})."""
    with tarfile.open(path, "w:gz") as tar:
        for name, text in files.items():
            data = text.encode("utf-8")
            info = tarfile.TarInfo(name=name)
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
    return path


ENV_TEMPLATE = """\
# Quay stack configuration
POSTGRES_DB=quay
POSTGRES_USER=quayuser
POSTGRES_PASSWORD='p@ss!word'
PG_VERSION=15
REDIS_PASS='r3dis$ecret'
QUAY_NET=app-net
QUAY_NET_SUBNET=10.90.0.0/24
PG_IP=10.90.0.10
REDIS_IP=10.90.0.11
QUAY={root}
"""


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def sleeper():
    return Sleeper()


@pytest.fixture
def data_root(tmp_path):
    return tmp_path / "quay"


@pytest.fixture
def env_file(tmp_path, data_root):
    path = tmp_path / "quay.env"
    path.write_text(ENV_TEMPLATE.format(root=data_root))
    return path


@pytest.fixture
def stack_config(env_file):
    return ConfigLoader().load(str(env_file))


@pytest.fixture
def settings(tmp_path):
    return OrchestratorSettings(
        unit_dir=tmp_path / "units",
        readiness_attempts=5,
        readiness_interval=2.0,
        app_settle_delay=10.0,
        reload_settle_delay=2.0,
    )


@pytest.fixture
def healthy_runner(runner):
    """Answers like a host where everything comes up on the first try."""
    runner.on("podman", "network", "exists", returncode=1)
    runner.on("podman", "exec", "quay-redis", stdout="PONG\n")
    runner.on("systemctl", "--user", "list-unit-files",
              stdout="quay-postgres.service generated -\n"
                     "quay-quay.service generated -\n"
                     "quay-redis.service generated -\n")
    return runner
