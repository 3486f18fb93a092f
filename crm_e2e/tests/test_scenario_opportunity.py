"""Opportunity creation through the Lightning UI, checked in the UI and via the API."""
import pytest

from crm_e2e import workflows
from crm_e2e.config import settings
from crm_e2e.models import Severity
from crm_e2e.workflows import OpportunityFormData

pytestmark = [pytest.mark.asyncio, pytest.mark.live]


async def test_create_opportunity_with_quantity(writable_profile, driver, api):
    account_name = workflows.unique_name("Acct")
    account_id = workflows.ensure_account(api, account_name)
    data = OpportunityFormData(
        name=workflows.unique_name("Opp"),
        close_date=workflows.future_date(30),
        stage=workflows.STAGES["prospecting"],
        account_name=account_name,
        quantity=100,
    )

    created = await workflows.create_opportunity(driver, data)
    try:
        assert "was created" in created.notification.message
        assert created.notification.severity is Severity.SUCCESS

        details = await workflows.opportunity_details(driver)
        assert data.name in details["Opportunity Name"]
        assert "Prospecting" in details["Stage"]
        assert "100" in details["Quantity"]

        record = api.get_record("Opportunity", created.record_id, fields=["Name", "StageName", "Quantity__c"])
        assert record["Name"] == data.name
        assert record["StageName"] == "Prospecting"
        assert record["Quantity__c"] == 100

        if settings.screenshot_dir:
            await driver.screenshot(f"{settings.screenshot_prefix}-opportunity-created")

        await driver.navigate_to_record("Account", account_id)
        assert await workflows.opportunity_in_related_list(driver, data.name)
    finally:
        api.delete_record("Opportunity", created.record_id)
        api.delete_record("Account", account_id)


async def test_required_field_missing_shows_error(writable_profile, driver):
    await workflows.open_new_record_modal(driver, "Opportunity")
    await driver.locate_and_fill("Opportunity Name", workflows.unique_name("Opp"))

    await driver.save_record()

    # Close Date and Stage are required; the form stays open with an error
    assert driver.extract_record_identifier() == ""
    assert await driver.is_action_available("Save")
