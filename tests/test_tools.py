import json
from datetime import date

import pytest

from tools_catalog import create_catalog_item, create_variable
from tools_flows import add_create_record_action, connect_flow_actions, create_flow
from tools_forms import create_table_field, create_ui_policy, create_ui_policy_action
from tools_records import create_record, query_records, test_connection as connection_tool
from tools_scripts import create_business_rule, create_script_include, update_business_rule
from tools_update_sets import (
    create_update_set,
    get_current_update_set,
    set_application_scope,
    set_current_update_set,
)


@pytest.mark.asyncio
async def test_connection_reports_bad_credentials(ctx, instance):
    instance.fail("GET", "sys_user", 401, "User Not Authenticated")

    out = await connection_tool(ctx)

    assert out.startswith("Error: Failed to connect to ServiceNow:")
    assert "SERVICENOW_USERNAME" in out


@pytest.mark.asyncio
async def test_connection_ok(ctx):
    out = await connection_tool(ctx)
    assert "Connected to ServiceNow" in out
    assert "https://test.service-now.com" in out


@pytest.mark.asyncio
async def test_query_records_newest_first_with_limit(ctx, instance):
    instance.add("incident", number="INC001", priority="1", state="2")
    instance.add("incident", number="INC002", priority="1", state="3")

    out = await query_records("incident", ctx, query="priority=1", limit=5, fields="number")

    assert "Found 2 record(s) in table 'incident'" in out
    assert '"number": "INC001"' in out
    assert '"state"' not in out
    request = instance.requests[-1]
    assert request.params["sysparm_query"] == "priority=1^ORDERBYDESCsys_created_on"
    assert request.params["sysparm_limit"] == "5"
    assert request.params["sysparm_fields"] == "number"


@pytest.mark.asyncio
async def test_query_records_rejects_bad_table(ctx, instance):
    out = await query_records("incident^x", ctx)
    assert out.startswith("Error: Invalid input")
    assert instance.requests == []


@pytest.mark.asyncio
async def test_create_record_in_tracked_update_set(ctx, instance):
    await set_current_update_set("us123", ctx)

    out = await create_record("incident", {"short_description": "Email down"}, ctx)

    assert "Created incident record" in out
    assert "Update Set: us123" in out
    assert instance.posted("incident")[0]["sys_update_set"] == "us123"


@pytest.mark.asyncio
async def test_set_current_update_set_reports_local_tracking(ctx, instance):
    instance.fail("POST", "sys_user_preference", 403, "Insufficient rights")

    out = await set_current_update_set("us123", ctx)

    assert not out.startswith("Error")
    assert "Update Set ID: us123" in out
    assert "Tracking: local" in out
    assert "Note: ServiceNow API error (HTTP 403): Insufficient rights" in out


@pytest.mark.asyncio
async def test_get_current_update_set_untracked(ctx):
    out = await get_current_update_set(ctx)
    assert out.startswith("No update set is currently tracked.")


@pytest.mark.asyncio
async def test_create_update_set_tool(ctx, instance):
    out = await create_update_set("Feature X", ctx, description="desc")

    assert "Name: MCP_Feature X" in out
    assert "State: build" in out
    assert "Tracking: confirmed" in out


@pytest.mark.asyncio
async def test_set_application_scope_unknown(ctx):
    out = await set_application_scope("x_missing", ctx)
    assert out.startswith("Error: Failed to set application scope:")
    assert "x_missing" in out


@pytest.mark.asyncio
async def test_set_application_scope_lookup_failure_is_an_error(ctx, instance):
    instance.fail("GET", "sys_app", 500, "Internal error")

    out = await set_application_scope("global", ctx)

    assert out.startswith("Error: Failed to set application scope: ServiceNow API error (HTTP 500)")
    assert "for this session" not in out


@pytest.mark.asyncio
async def test_set_application_scope_keeps_switch_when_preference_fails(ctx, instance):
    instance.add("sys_app", scope="x_acme_app", name="Acme")
    instance.fail("POST", "sys_user_preference", 403, "Insufficient rights")

    out = await set_application_scope("x_acme_app", ctx)

    assert out.startswith("Application scope set to x_acme_app for this session.")
    assert (
        "Note: the instance preference could not be updated: "
        "ServiceNow API error (HTTP 403): Insufficient rights"
    ) in out

    out = await create_script_include("Foo", "var Foo = Class.create();", ctx)

    assert not out.startswith("Error")
    assert instance.posted("sys_script_include")[0]["sys_scope"] == "x_acme_app"


@pytest.mark.asyncio
async def test_create_catalog_item_starts_update_set_and_category(ctx, instance):
    out = await create_catalog_item("Create a catalog item called 'New Laptop' in Hardware", ctx)

    update_set = instance.posted("sys_update_set")[0]
    assert update_set["name"] == f"MCP_Catalog Item Creation - {date.today().isoformat()}"

    category = instance.posted("sc_category")[0]
    assert category["title"] == "Hardware"

    item = instance.posted("sc_cat_item")[0]
    assert item["name"] == "New Laptop"
    assert item["category"] == instance.tables["sc_category"][0]["sys_id"]
    assert item["sys_update_set"] == instance.tables["sys_update_set"][0]["sys_id"]
    assert "Category: Hardware" in out


@pytest.mark.asyncio
async def test_create_catalog_item_reuses_tracked_set_and_category(ctx, instance):
    existing = instance.add("sc_category", title="Hardware", active="true")
    await set_current_update_set("us123", ctx)

    await create_catalog_item("Create a catalog item called 'Monitor' in Hardware", ctx)

    assert instance.posted("sys_update_set") == []
    assert instance.posted("sc_category") == []
    item = instance.posted("sc_cat_item")[0]
    assert item["category"] == existing["sys_id"]
    assert item["sys_update_set"] == "us123"


@pytest.mark.asyncio
async def test_create_catalog_item_falls_back_to_active_category(ctx, instance):
    fallback = instance.add("sc_category", title="General", active="true")
    instance.fail("POST", "sc_category", 403)
    await set_current_update_set("us123", ctx)

    out = await create_catalog_item("Create a catalog item called 'Chair' in Furniture", ctx)

    assert instance.posted("sc_cat_item")[0]["category"] == fallback["sys_id"]
    assert "Category: General" in out


@pytest.mark.asyncio
async def test_create_choice_variable_adds_choice_rows(ctx, instance):
    out = await create_variable("urgency", "Urgency", "choice", "cat1", ctx, choices="low, medium, high")

    variable = instance.posted("item_option_new")[0]
    assert variable["type"] == "3"
    assert variable["cat_item"] == "cat1"
    choices = instance.posted("question_choice")
    assert [c["value"] for c in choices] == ["low", "medium", "high"]
    assert [c["order"] for c in choices] == [100, 200, 300]
    assert {c["question"] for c in choices} == {instance.tables["item_option_new"][0]["sys_id"]}
    assert "Choices: low, medium, high" in out


@pytest.mark.asyncio
async def test_string_variable_gets_default_max_length(ctx, instance):
    await create_variable("title", "Title", "string", "cat1", ctx)
    assert instance.posted("item_option_new")[0]["max_length"] == 255


@pytest.mark.asyncio
async def test_ui_policy_with_catalog_item_becomes_catalog_policy(ctx, instance):
    out = await create_ui_policy("Show reason", ctx, catalog_item="cat1", conditions="urgency=high")

    assert instance.posted("sys_ui_policy") == []
    policy = instance.posted("catalog_ui_policy")[0]
    assert policy["catalog_item"] == "cat1"
    assert policy["catalog_conditions"] == "urgency=high"
    assert policy["applies_catalog"] is True
    assert "Created catalog UI policy" in out


@pytest.mark.asyncio
async def test_ui_policy_needs_table_or_catalog_item(ctx, instance):
    out = await create_ui_policy("Nothing", ctx)
    assert out.startswith("Error: Failed to create UI policy: table is required")
    assert instance.writes() == []


@pytest.mark.asyncio
async def test_ui_policy_action_on_variable_becomes_catalog_action(ctx, instance):
    policy = instance.add("catalog_ui_policy", catalog_item={"value": "cat1"})
    instance.add("item_option_new", cat_item="cat1", name="reason")

    out = await create_ui_policy_action(policy["sys_id"], "variables.reason", ctx, visible=True)

    action = instance.posted("catalog_ui_policy_action")[0]
    assert action["variable"] == "reason"
    assert action["visible"] == "true"
    assert action["mandatory"] == "leave_alone"
    assert action["disabled"] == "leave_alone"
    assert "Created catalog UI policy action" in out


@pytest.mark.asyncio
async def test_ui_policy_action_reports_missing_variable(ctx, instance):
    policy = instance.add("catalog_ui_policy", catalog_item="cat1")
    for name in ("a", "b", "c"):
        instance.add("item_option_new", cat_item="cat1", name=name)

    out = await create_ui_policy_action(policy["sys_id"], "variables.nonexistent_var", ctx)

    assert out.startswith("Error: Failed to create catalog UI policy action:")
    assert "Found 3 variable(s): a, b, c" in out


@pytest.mark.asyncio
async def test_plain_ui_policy_action_defaults(ctx, instance):
    await create_ui_policy_action("pol1", "short_description", ctx, mandatory=True)

    action = instance.posted("sys_ui_policy_action")[0]
    assert action == {
        "ui_policy": "pol1",
        "field": "short_description",
        "visible": True,
        "mandatory": True,
        "disabled": False,
    }


@pytest.mark.asyncio
async def test_choice_table_field_adds_sys_choice_rows(ctx, instance):
    await create_table_field("incident", "u_reason", "Reason", "choice", ctx, choices="a,b")

    field = instance.posted("sys_dictionary")[0]
    assert field["name"] == "incident"
    assert field["element"] == "u_reason"
    assert field["choice"] == "1"
    assert [c["value"] for c in instance.posted("sys_choice")] == ["a", "b"]


@pytest.mark.asyncio
async def test_business_rule_operation_flags(ctx, instance):
    out = await create_business_rule(
        "Stamp",
        "incident",
        "before",
        "(function executeRule(current, previous) {})(current, previous);",
        ctx,
        operation=["insert", "delete"],
    )

    rule = instance.posted("sys_script")[0]
    assert rule["collection"] == "incident"
    assert (rule["insert"], rule["update"], rule["delete"], rule["query"]) == (True, False, True, False)
    assert rule["active"] is True
    assert "Operations: insert, delete" in out


@pytest.mark.asyncio
async def test_update_business_rule_sends_only_changes(ctx, instance):
    rule = instance.add("sys_script", name="Stamp", active=True)

    out = await update_business_rule(rule["sys_id"], ctx, active=False)

    assert instance.requests[-1].json == {"active": False}
    assert "Updated fields: active" in out
    assert await update_business_rule(rule["sys_id"], ctx) == (
        "Error: No fields to update. Provide at least one field besides sys_id."
    )


@pytest.mark.asyncio
async def test_flow_assembly(ctx, instance):
    await set_current_update_set("us123", ctx)
    await create_flow("Onboarding", ctx)
    flow_id = instance.tables["sys_hub_flow"][0]["sys_id"]

    await add_create_record_action(flow_id, "sc_task", {"short_description": "Laptop"}, 1, ctx)
    action = instance.posted("sys_hub_action_instance")[0]
    assert action["flow"] == flow_id
    assert action["sys_update_set"] == "us123"
    assert json.loads(action["values"]) == {"table": "sc_task", "field_values": {"short_description": "Laptop"}}

    out = await connect_flow_actions(flow_id, "a1", "a1", ctx)
    assert out.startswith("Error: Invalid input")
