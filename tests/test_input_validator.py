import pytest
from pydantic import ValidationError

from input_validator import (
    BusinessRuleParams,
    BusinessRuleUpdate,
    CatalogItemCommand,
    CatalogUIPolicyActionParams,
    CatalogUIPolicyParams,
    EmailNotificationParams,
    FlowConnectionParams,
    FlowTriggerParams,
    RecordCreate,
    RecordQuery,
    ScheduledJobParams,
    VariableParams,
)


def test_table_names_are_restricted():
    assert RecordQuery(table=" incident ").table == "incident"
    for bad in ("Incident", "incident; drop", "1table", ""):
        with pytest.raises(ValidationError):
            RecordQuery(table=bad)


def test_query_limit_bounds():
    with pytest.raises(ValidationError):
        RecordQuery(table="incident", limit=0)
    with pytest.raises(ValidationError):
        RecordQuery(table="incident", limit=1001)
    assert RecordQuery(table="incident", fields="number, state,").field_list() == ["number", "state"]


def test_record_create_requires_fields():
    with pytest.raises(ValidationError):
        RecordCreate(table="incident", fields={})


def test_scheduled_job_companions():
    with pytest.raises(ValidationError, match="run_dayofweek"):
        ScheduledJobParams(name="j", script="s", run_period="weekly")
    with pytest.raises(ValidationError, match="run_dayofmonth"):
        ScheduledJobParams(name="j", script="s", run_period="monthly")
    with pytest.raises(ValidationError, match="condition"):
        ScheduledJobParams(name="j", script="s", conditional=True)
    with pytest.raises(ValidationError, match="HH:MM:SS"):
        ScheduledJobParams(name="j", script="s", run_time="3pm")
    assert ScheduledJobParams(name="j", script="s", run_period="weekly", run_dayofweek="2").active


def test_variable_companions_and_type_codes():
    with pytest.raises(ValidationError, match="reference_table"):
        VariableParams(name="v", question_text="V", type="reference", catalog_item="c")
    with pytest.raises(ValidationError, match="choices"):
        VariableParams(name="v", question_text="V", type="choice", catalog_item="c")
    with pytest.raises(ValidationError, match="Unknown variable type"):
        VariableParams(name="v", question_text="V", type="slider", catalog_item="c")

    v = VariableParams(name="v", question_text="V", type="choice", catalog_item="c", choices="low, high")
    assert v.type_code == "3"
    assert v.choice_list() == ["low", "high"]


def test_catalog_ui_policy_needs_a_target():
    with pytest.raises(ValidationError, match="catalog_item or variable_set"):
        CatalogUIPolicyParams(name="p")
    with pytest.raises(ValidationError, match="variable_set is required"):
        CatalogUIPolicyParams(name="p", catalog_item="c", applies_to="A Variable Set")


def test_catalog_action_defaults_and_bool_conversion():
    p = CatalogUIPolicyActionParams(catalog_ui_policy="p", variable_name="v", visible=False)
    assert p.visible == "false"
    assert p.mandatory == "leave_alone"
    assert p.value_action == "leave_alone"
    assert p.field_message_type == "none"


def test_catalog_action_companions():
    with pytest.raises(ValidationError, match="value is required"):
        CatalogUIPolicyActionParams(catalog_ui_policy="p", variable_name="v", value_action="set_value")
    # An empty string is a legitimate value to set
    assert CatalogUIPolicyActionParams(
        catalog_ui_policy="p", variable_name="v", value_action="set_value", value=""
    ).value == ""
    with pytest.raises(ValidationError, match="field_message is required"):
        CatalogUIPolicyActionParams(catalog_ui_policy="p", variable_name="v", field_message_type="info")
    with pytest.raises(ValidationError):
        CatalogUIPolicyActionParams(catalog_ui_policy="p", variable_name="v", mandatory="maybe")


def test_business_rule_operations():
    rule = BusinessRuleParams(name="r", table="incident", when="before", script="s", operation="insert, delete")
    assert rule.operation_flags() == {"insert": True, "update": False, "delete": True, "query": False}
    assert BusinessRuleParams(name="r", table="incident", when="after", script="s").operation == ["insert", "update"]
    with pytest.raises(ValidationError, match="Unknown operation"):
        BusinessRuleParams(name="r", table="incident", when="before", script="s", operation=["merge"])
    with pytest.raises(ValidationError):
        BusinessRuleParams(name="r", table="incident", when="sometimes", script="s")


def test_business_rule_update_only_sends_given_fields():
    update = BusinessRuleUpdate(sys_id="br1", active=False, operation=["query"])
    assert update.changes() == {
        "active": False,
        "insert": False,
        "update": False,
        "delete": False,
        "query": True,
    }
    assert BusinessRuleUpdate(sys_id="br1").changes() == {}


def test_email_notification_accepts_from_alias():
    base = dict(name="n", table="incident", event="insert", subject="s", message="m")
    assert EmailNotificationParams(**base, **{"from": "a@b.c"}).from_address == "a@b.c"
    assert EmailNotificationParams(**base, from_address="a@b.c").from_address == "a@b.c"


def test_flow_companions():
    with pytest.raises(ValidationError, match="table is required"):
        FlowTriggerParams(flow_id="f", type="record_created")
    assert FlowTriggerParams(flow_id="f", type="scheduled").table == ""
    with pytest.raises(ValidationError, match="must be different"):
        FlowConnectionParams(flow_id="f", from_action="a1", to_action="a1")


def test_catalog_item_command_parsing():
    cmd = CatalogItemCommand(command="Create a catalog item called 'New Laptop Request' in IT Service Catalog")
    assert cmd.item_name == "New Laptop Request"
    assert cmd.category == "IT Service Catalog"

    assert CatalogItemCommand(command='Create a catalog item called "Badge"').category == "General"
    assert CatalogItemCommand(command="called 'Desk' in the 'Facilities'").category == "Facilities"

    with pytest.raises(ValidationError, match="Could not extract catalog item name"):
        CatalogItemCommand(command="make me a laptop item")


def test_query_values_reject_term_separator():
    with pytest.raises(ValidationError, match=r"must not contain '\^'"):
        CatalogUIPolicyActionParams(catalog_ui_policy="p", variable_name="reason^ORname=other")
    with pytest.raises(ValidationError, match=r"must not contain '\^'"):
        CatalogUIPolicyActionParams(catalog_ui_policy="p^active=true", variable_name="reason")
    with pytest.raises(ValidationError, match=r"must not contain '\^'"):
        BusinessRuleUpdate(sys_id="br1^name=x", active=False)
    with pytest.raises(ValidationError, match=r"must not contain '\^'"):
        FlowConnectionParams(flow_id="f1", from_action="a1^x", to_action="a2")
    assert CatalogUIPolicyActionParams(catalog_ui_policy="p", variable_name=" reason ").variable_name == "reason"
