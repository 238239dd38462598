import pytest

from stackboot.api_models import BucketSpec, QueryResponse
from stackboot.database import DEFAULT_BUCKETS, ProvisioningError, primary_index_statement


def test_bootstrap_creates_buckets_then_indexes_in_order(database, stack, docker_ops):
    report = database.bootstrap(["users", "users_pictures", "users_publishments"])

    assert report.created_buckets == ["users", "users_pictures", "users_publishments"]
    assert report.created_indexes == ["users", "users_pictures", "users_publishments"]
    assert stack.statements == [
        "CREATE PRIMARY INDEX ON users",
        "CREATE PRIMARY INDEX ON users_pictures",
        "CREATE PRIMARY INDEX ON users_publishments",
    ]
    assert stack.timeline == [
        ("bucket-create", "users"),
        ("bucket-create", "users_pictures"),
        ("bucket-create", "users_publishments"),
        ("index", "users"),
        ("index", "users_pictures"),
        ("index", "users_publishments"),
    ]


def test_bucket_create_uses_admin_cli_with_wait(database, docker_ops, settings):
    database.create_bucket(BucketSpec(name="users", ram_quota_mb=256))

    argv = docker_ops.execs[0]
    assert argv[:2] == ["/opt/couchbase/bin/couchbase-cli", "bucket-create"]
    assert ["-c", "127.0.0.1:8091", "-u", settings.couchbase_user, "-p", settings.couchbase_pass] == argv[2:8]
    assert "--bucket=users" in argv
    assert "--bucket-type=couchbase" in argv
    assert "--bucket-ramsize=256" in argv
    assert "--bucket-replica=1" in argv
    assert argv[-1] == "--wait"


def test_bootstrap_waits_for_node(database, stack):
    stack.node_failures = 3
    database.bootstrap(DEFAULT_BUCKETS)
    assert stack.node_failures == 0
    assert len(stack.buckets) == 3


def test_rerun_skips_existing_buckets_and_indexes(database, stack, state):
    database.bootstrap()
    stack.timeline.clear()

    report = database.bootstrap()

    assert report.created_buckets == []
    assert report.skipped_buckets == list(DEFAULT_BUCKETS)
    assert report.created_indexes == []
    assert report.skipped_indexes == list(DEFAULT_BUCKETS)
    assert stack.timeline == []
    assert "Primary index on users already exists" in state.messages("couchbase")


def test_duplicate_index_is_an_ignorable_conflict(database, stack):
    stack.buckets.add("users")
    assert database.create_index("users") is True
    assert database.create_index("users") is False
    assert stack.indexes == {"users"}


def test_index_on_missing_bucket_is_fatal(database):
    with pytest.raises(ProvisioningError, match="12003"):
        database.create_index("ghost")


def test_bucket_create_failure_is_fatal(database, stack):
    stack.bucket_create_exit = 2
    with pytest.raises(ProvisioningError, match="bucket-create failed"):
        database.bootstrap()
    assert stack.statements == []


def test_wrong_credentials_fail_bucket_check(database, stack):
    stack.password = "changed"
    with pytest.raises(ProvisioningError, match="HTTP 401"):
        database.bucket_exists("users")


def test_remove_bucket(database, stack, docker_ops):
    database.bootstrap()
    database.remove_bucket("users_pictures")
    assert "users_pictures" not in stack.buckets
    assert docker_ops.execs[-1][1] == "bucket-delete"
    assert "--bucket=users_pictures" in docker_ops.execs[-1]


def test_query_response_conflict_detection():
    body = QueryResponse.model_validate(
        {"status": "errors", "errors": [{"code": 4300, "msg": "The index #primary already exists."}]}
    )
    assert body.already_exists()
    assert not QueryResponse(status="fatal").already_exists()
    assert primary_index_statement("users") == "CREATE PRIMARY INDEX ON users"
