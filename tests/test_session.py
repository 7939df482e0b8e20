import asyncio

import pytest

from servicenow_client import ServiceNowAuthError, TrackingSource
from session import SessionController


def test_attach_tracking_before_anything_is_tracked(session):
    assert session.tracked_update_set is None
    assert session.attach_tracking({"name": "x"}) == {"name": "x"}


@pytest.mark.asyncio
async def test_set_current_confirmed(session, instance):
    report = await session.set_current("us123")

    assert report.sys_id == "us123"
    assert report.confirmed
    assert report.error is None
    assert instance.tables["sys_user_preference"][0]["value"] == "us123"

    current = await session.get_current()
    assert current.sys_id == "us123"
    assert current.source is TrackingSource.PREFERENCE_CONFIRMED


@pytest.mark.asyncio
async def test_set_current_survives_preference_failure(session, instance):
    instance.fail("POST", "sys_user_preference", 403, "Insufficient rights")

    report = await session.set_current("us123")

    assert report.sys_id == "us123"
    assert report.source is TrackingSource.LOCALLY_TRACKED
    assert "HTTP 403" in report.error
    assert session.tracked_update_set == "us123"
    assert (await session.get_current()).sys_id == "us123"


@pytest.mark.asyncio
async def test_success_and_failure_paths_leave_same_local_state(settings, transport, instance):
    ok = SessionController(settings, transport=transport)
    await ok.set_current("us123")

    instance.fail("PUT", "sys_user_preference", 403)
    instance.fail("POST", "sys_user_preference", 403)
    failing = SessionController(settings, transport=transport)
    await failing.set_current("us123")

    assert ok.tracked_update_set == failing.tracked_update_set == "us123"
    assert ok.attach_tracking({"a": 1}) == failing.attach_tracking({"a": 1})


@pytest.mark.asyncio
async def test_scenario_b_create_after_failed_preference(session, instance):
    instance.fail("POST", "sys_user_preference", 403)
    await session.set_current("us123")

    client = await session.ensure_client()
    await client.create_script_include({"name": "Foo", "script": "var Foo = Class.create();"})

    assert instance.posted("sys_script_include")[0]["sys_update_set"] == "us123"


@pytest.mark.asyncio
async def test_tracking_set_while_offline_seeds_new_client(session, instance):
    instance.fail("GET", "sys_user", 401)
    report = await session.set_current("us123")
    assert report.source is TrackingSource.LOCALLY_TRACKED

    del instance.failures[("GET", "sys_user")]
    client = await session.ensure_client()

    assert client.current_update_set == "us123"


@pytest.mark.asyncio
async def test_create_record_injects_without_overwriting(session, instance):
    await session.set_current("us123")

    await session.create_record("incident", {"short_description": "down"})
    await session.create_record("incident", {"short_description": "pinned", "sys_update_set": "other"})

    first, second = instance.posted("incident")
    assert first["sys_update_set"] == "us123"
    assert second["sys_update_set"] == "other"


@pytest.mark.asyncio
async def test_update_record_is_not_tracked(session, instance):
    row = instance.add("incident", short_description="x")
    await session.set_current("us123")

    await session.update_record("incident", row["sys_id"], {"state": "2"})

    assert instance.requests[-1].json == {"state": "2"}


@pytest.mark.asyncio
async def test_get_current_untracked_is_none(session):
    assert await session.get_current() is None


@pytest.mark.asyncio
async def test_get_current_reports_id_when_lookup_fails(session, instance):
    await session.set_current("us123")
    instance.fail("GET", "sys_update_set", 500, "Internal error")

    report = await session.get_current()

    assert report.sys_id == "us123"
    assert report.record is None
    assert "HTTP 500" in report.error


@pytest.mark.asyncio
async def test_get_current_includes_update_set_row(session, instance):
    row = instance.add("sys_update_set", name="MCP_Feature", state="build")
    await session.set_current(row["sys_id"])

    report = await session.get_current()

    assert report.record["name"] == "MCP_Feature"


@pytest.mark.asyncio
async def test_create_update_set_makes_it_current(session, instance):
    record, report = await session.create_update_set("Feature X", "desc")

    assert session.tracked_update_set == record["sys_id"]
    assert report.confirmed
    # The update set row itself is never attributed to an update set
    assert "sys_update_set" not in instance.posted("sys_update_set")[0]


@pytest.mark.asyncio
async def test_create_update_set_without_make_current(session):
    record, report = await session.create_update_set("Feature X", "desc", make_current=False)

    assert report is None
    assert session.tracked_update_set is None
    assert record["name"] == "MCP_Feature X"


@pytest.mark.asyncio
async def test_client_is_built_once(session, instance):
    first, second = await asyncio.gather(session.ensure_client(), session.ensure_client())

    assert first is second
    auth_calls = [r for r in instance.requests if r.table == "sys_user"]
    assert len(auth_calls) == 1


@pytest.mark.asyncio
async def test_failed_authentication_is_retried_next_call(session, instance):
    instance.fail("GET", "sys_user", 401)
    with pytest.raises(ServiceNowAuthError):
        await session.ensure_client()

    del instance.failures[("GET", "sys_user")]
    client = await session.ensure_client()
    assert client is await session.ensure_client()
    await session.aclose()


@pytest.mark.asyncio
async def test_set_current_reports_preference_row_without_sys_id(session, instance):
    pref = instance.add("sys_user_preference", user="user-0001", name="sys_update_set", value="old")
    del pref["sys_id"]

    report = await session.set_current("us123")

    assert report.source is TrackingSource.LOCALLY_TRACKED
    assert "without a sys_id" in report.error
    assert session.tracked_update_set == "us123"
