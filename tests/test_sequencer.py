import pytest

from stackboot.database import ProvisioningError
from stackboot.readiness import DependencyNotReady
from stackboot.sequencer import Sequencer, UnknownCommand


def test_full_run_order(sequencer, stack, state):
    sequencer.run()

    assert state.completed == list(Sequencer.PHASES)
    ups = [svc for kind, svc in stack.timeline if kind == "up"]
    assert ups == ["couchbase", "touchbase", "nginx", "prometheus"]
    assert stack.timeline[0] == ("pull", "")
    assert stack.buckets == {"users", "users_pictures", "users_publishments"}
    assert stack.indexes == stack.buckets


@pytest.mark.parametrize("service", ["touchbase", "nginx"])
def test_template_published_before_service_starts(sequencer, stack, service):
    stack.kv_failures = 2
    sequencer.run()

    key = f"{service}/template"
    published = stack.timeline.index(("kv", key))
    started = stack.timeline.index(("up", service))
    assert published < started
    # no start was issued while the store was still refusing writes
    assert all(e != ("up", service) for e in stack.timeline[:published])


def test_empty_store_retries_then_starts_app(sequencer, stack):
    stack.kv_failures = 1
    sequencer.start_app()
    assert stack.timeline == [
        ("kv-fail", "touchbase/template"),
        ("kv", "touchbase/template"),
        ("up", "touchbase"),
    ]


def test_nginx_gate_polls_root_page(sequencer, stack, settings, capsys):
    sequencer.settings = settings.with_overrides(open_browser=True)
    stack.nginx_failures = 3

    ep = sequencer.start_nginx()

    assert stack.nginx_failures == 0
    assert sequencer.opened == [ep.url()]
    assert "Waiting for Nginx" in capsys.readouterr().out


def test_telemetry_gate_failure_aborts(sequencer, stack, settings):
    sequencer.settings = settings.with_overrides(ready_timeout_s=1, poll_interval_s=0.4)
    stack.prometheus_failures = 10_000

    with pytest.raises(DependencyNotReady):
        sequencer.start_telemetry()


def test_failed_phase_stops_the_run(sequencer, stack, state):
    stack.bucket_create_exit = 1
    with pytest.raises(ProvisioningError):
        sequencer.run()
    assert state.completed == ["prep", "start_database", "show_consoles"]
    assert ("up", "touchbase") not in stack.timeline


def test_show_consoles_ignores_browser_errors(sequencer, settings, capsys):
    import webbrowser

    def broken(url):
        raise webbrowser.Error("no browser")

    sequencer.settings = settings.with_overrides(open_browser=True)
    sequencer.opener = broken
    sequencer.show_consoles()
    out = capsys.readouterr().out
    assert "Dashboard: 10.0.0.2:8500" in out
    assert "Dashboard: 10.0.0.3:8091" in out


def test_scale_command(sequencer, docker_ops):
    sequencer.run_command("scale")
    scaled = [a[a.index("--scale") + 1] for a in docker_ops.argvs]
    assert scaled == ["couchbase=3", "touchbase=3", "nginx=2"]


def test_remove_bucket_command(sequencer, stack):
    sequencer.run_command("setup-database")
    sequencer.run_command("remove_bucket", "users")
    assert stack.buckets == {"users_pictures", "users_publishments"}


def test_write_template_command(sequencer, stack, project_dir):
    sequencer.run_command("write-template", "nginx", str(project_dir / "nginx" / "default.ctmpl"))
    assert stack.kv["nginx/template"] == b"upstream touchbase { }\n"


def test_unknown_command_and_bad_arguments(sequencer):
    with pytest.raises(UnknownCommand, match="Unknown command"):
        sequencer.run_command("release")
    with pytest.raises(UnknownCommand, match="Bad arguments"):
        sequencer.run_command("remove-bucket")
