"""A platform user with read-only opportunity access cannot edit records."""
import pytest

from crm_e2e import workflows
from crm_e2e.workflows import OpportunityFormData, PlatformUserData

pytestmark = [pytest.mark.asyncio, pytest.mark.live]


@pytest.fixture
def read_only_user(writable_profile, api):
    username = workflows.generate_username("readonly")
    data = PlatformUserData(
        first_name="Test",
        last_name="PlatformUser",
        email=username,
        username=username,
    )
    user_id = workflows.create_platform_user(api, data)
    yield username
    api.deactivate_user(user_id)


@pytest.fixture
def opportunity_id(writable_profile, api):
    data = OpportunityFormData(name=workflows.unique_name("Opp"), close_date=workflows.future_date(30))
    record_id = workflows.create_opportunity_via_api(api, data)
    yield record_id
    api.delete_record("Opportunity", record_id)


async def test_read_only_user_is_provisioned(read_only_user, api):
    user_id = api.get_user_id_by_username(read_only_user)

    record = api.get_record("User", user_id, fields=["IsActive"])
    assert record["IsActive"] is True
    assert api.user_has_permission_set(user_id, workflows.READ_ONLY_PERMISSION_SET)


async def test_read_only_user_can_view_but_not_edit(read_only_user, opportunity_id, driver, api):
    await workflows.login_as_user(driver, api, read_only_user)

    await driver.navigate_to_object("Opportunity")
    assert "opportunit" in (await driver.page_title()).lower()

    await driver.navigate_to_record("Opportunity", opportunity_id)
    assert await workflows.can_edit_record(driver) is False
    assert await driver.is_field_editable("Opportunity Name") is False
