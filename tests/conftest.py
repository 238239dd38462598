import os
import sys

import pytest
from fastapi.testclient import TestClient

# Ensure project root is importable (so `import cli` works without installing)
_project_root = os.path.dirname(os.path.dirname(__file__))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from fakes import FakeDockerOps, Stack, StaticResolver, make_stack_app  # noqa: E402

from stackboot.database import DatabaseBootstrapper  # noqa: E402
from stackboot.kv import ConfigPublisher  # noqa: E402
from stackboot.runtime import RunState  # noqa: E402
from stackboot.sequencer import Sequencer  # noqa: E402
from stackboot.settings import Settings  # noqa: E402


@pytest.fixture
def project_dir(tmp_path):
    (tmp_path / "config.json.ctmpl").write_bytes(b'{"couchbase": "{{ service \\"couchbase\\" }}"}\n')
    (tmp_path / "nginx").mkdir()
    (tmp_path / "nginx" / "default.ctmpl").write_bytes(b"upstream touchbase { }\n")
    return tmp_path


@pytest.fixture
def settings(project_dir):
    return Settings(
        project_dir=str(project_dir),
        poll_interval_s=0.0,
        db_poll_interval_s=0.0,
        ready_timeout_s=5,
        open_browser=False,
    )


@pytest.fixture
def stack():
    return Stack()


@pytest.fixture
def client(stack):
    with TestClient(make_stack_app(stack)) as c:
        yield c


@pytest.fixture
def docker_ops(settings, stack):
    return FakeDockerOps(settings, stack)


@pytest.fixture
def resolver(settings, docker_ops):
    return StaticResolver(settings, docker_ops)


@pytest.fixture
def state():
    return RunState()


@pytest.fixture
def database(docker_ops, client, resolver, settings, state):
    return DatabaseBootstrapper(docker_ops, client, resolver, settings, state=state)


@pytest.fixture
def publisher(client, resolver, settings):
    return ConfigPublisher(client, resolver, settings)


@pytest.fixture
def sequencer(settings, docker_ops, resolver, publisher, database, client, state):
    opened = []
    seq = Sequencer(settings, docker_ops, resolver, publisher, database, client, state=state, opener=opened.append)
    seq.opened = opened
    return seq
