import pytest

from fakes import FakeCatalog, FakeDockerClient

from stackboot.api_models import TritonAccount, TritonProfile
from stackboot.docker_ops import DockerOps
from stackboot.preflight import PreconditionError, docker_account, run_preflight
from stackboot.settings import Settings


DOCKER_INFO = {"SystemStatus": [["SDCAccount", "acct"], ["Data Center", "us-east-1"]]}
REMOTE = Settings(docker_host="tcp://us-east-1.docker.joyent.com:2376")


def _ops(settings, info=DOCKER_INFO):
    return DockerOps(settings, client=FakeDockerClient(info=info))


def test_docker_account_from_info():
    assert docker_account(DOCKER_INFO) == "acct"
    assert docker_account({"DriverStatus": [["SDCAccount:", "other"]]}) == "other"
    assert docker_account({}) == ""


def test_missing_triton_cli():
    with pytest.raises(PreconditionError, match="does not appear to be installed"):
        run_preflight(REMOTE, _ops(REMOTE), FakeCatalog(installed=False))


@pytest.mark.parametrize(
    "profile",
    [
        TritonProfile(account="someone-else", url="https://us-east-1.api.joyent.com"),
        TritonProfile(account="acct", url="https://us-sw-1.api.joyent.com"),
    ],
)
def test_mismatched_profile(profile):
    catalog = FakeCatalog(profile=profile, account=TritonAccount(login="acct", triton_cns_enabled=True))
    with pytest.raises(PreconditionError, match="does not match"):
        run_preflight(REMOTE, _ops(REMOTE), catalog)


def test_matching_profile_with_cns_disabled_is_a_notice():
    catalog = FakeCatalog(
        profile=TritonProfile(account="acct", url="https://us-east-1.api.joyent.com"),
        account=TritonAccount(login="acct", triton_cns_enabled=False),
    )
    notices = run_preflight(REMOTE, _ops(REMOTE), catalog)
    assert len(notices) == 1
    assert "CNS is not enabled" in notices[0]


def test_local_mode_skips_triton_but_needs_docker():
    local = Settings(compose_file="dc.yml")
    assert run_preflight(local, _ops(local), FakeCatalog(installed=False)) == []

    class Down:
        def docker_available(self):
            return False

    with pytest.raises(PreconditionError, match="Docker is not available"):
        run_preflight(local, Down())
