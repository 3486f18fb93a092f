"""Reusable business workflows for CRM scenarios.

Each workflow composes label-driven driver operations (and, for data setup,
the REST client) into one business action. Scenarios read as a sequence of
these calls; selectors never appear here.
"""
from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Dict, List, Optional, Tuple

from crm_e2e import strategies
from crm_e2e.api_client import CrmRestClient, UserSpec
from crm_e2e.driver import ResilientUIDriver
from crm_e2e.errors import FieldValueNotFound, ToolError
from crm_e2e.models import (
    FieldDescriptor,
    InteractionKind,
    NotificationCapture,
    RecordIdentifier,
    Severity,
)
from crm_e2e.readiness import StabilityReport
from crm_e2e.strategies import Strategy

logger = logging.getLogger(__name__)

STAGES: Dict[str, str] = {
    "prospecting": "Prospecting",
    "qualification": "Qualification",
    "needs_analysis": "Needs Analysis",
    "proposal": "Proposal/Price Quote",
    "negotiation": "Negotiation/Review",
    "closed_won": "Closed Won",
    "closed_lost": "Closed Lost",
}

PLATFORM_USER_PROFILE = "Standard Platform User"
READ_ONLY_PERMISSION_SET = "OpportunityReadOnly"

OPPORTUNITY_DETAIL_FIELDS = (
    "Opportunity Name",
    "Account Name",
    "Close Date",
    "Stage",
    "Amount",
    "Quantity",
    "Probability",
    "Type",
    "Lead Source",
    "Description",
    "Next Step",
)

RELATED_LIST_LINK: Tuple[Strategy, ...] = (
    Strategy(
        "list-view-manager-related",
        'force-list-view-manager-related-list article:has-text("Opportunities") a:has-text("{css}")',
    ),
    Strategy(
        "single-related-container",
        'lst-related-list-single-container:has-text("Opportunities") a:has-text("{css}")',
    ),
    Strategy(
        "accordion-section",
        'lightning-accordion-section:has-text("Opportunities") a:has-text("{css}")',
    ),
)

RELATED_TAB = 'a[data-label="Related"], li.uiTabBar__item:has-text("Related")'


def unique_name(prefix: str) -> str:
    """``<prefix>_<epoch ms><4 hex>`` so parallel runs never collide."""
    return f"{prefix}_{int(time.time() * 1000)}{secrets.token_hex(2)}"


def generate_username(prefix: str = "testuser", domain: str = "test.automation.com") -> str:
    return f"{unique_name(prefix).lower()}@{domain}"


def future_date(days: int = 30) -> str:
    return (date.today() + timedelta(days=days)).isoformat()


@dataclass
class CreatedRecord:
    record_id: RecordIdentifier
    notification: NotificationCapture


@dataclass
class OpportunityFormData:
    name: str
    close_date: str
    stage: str = STAGES["prospecting"]
    account_name: Optional[str] = None
    amount: Optional[str] = None
    quantity: Optional[int] = None
    probability: Optional[str] = None
    type: Optional[str] = None
    lead_source: Optional[str] = None
    description: Optional[str] = None
    next_step: Optional[str] = None

    def field_entries(self) -> List[Tuple[FieldDescriptor, str]]:
        """Fields to fill, in form order; unset optional fields are skipped."""
        entries: List[Tuple[FieldDescriptor, Optional[str]]] = [
            (FieldDescriptor("Opportunity Name"), self.name),
            (FieldDescriptor("Close Date", InteractionKind.DATE), self.close_date),
            (FieldDescriptor("Stage", InteractionKind.SINGLE_SELECT), self.stage),
            (FieldDescriptor("Account Name", InteractionKind.RELATIONSHIP_LOOKUP), self.account_name),
            (FieldDescriptor("Amount", InteractionKind.CURRENCY_AMOUNT), self.amount),
            (FieldDescriptor("Quantity"), None if self.quantity is None else str(self.quantity)),
            (FieldDescriptor("Probability"), self.probability),
            (FieldDescriptor("Type", InteractionKind.SINGLE_SELECT), self.type),
            (FieldDescriptor("Lead Source", InteractionKind.SINGLE_SELECT), self.lead_source),
            (FieldDescriptor("Description"), self.description),
            (FieldDescriptor("Next Step"), self.next_step),
        ]
        return [(descriptor, value) for descriptor, value in entries if value is not None]


@dataclass
class PlatformUserData:
    first_name: str
    last_name: str
    email: str
    username: str
    profile_name: str = PLATFORM_USER_PROFILE
    permission_set: Optional[str] = READ_ONLY_PERMISSION_SET
    password: Optional[str] = None


# ---- record creation (UI) -----------------------------------------------------------
async def open_new_record_modal(driver: ResilientUIDriver, object_name: str) -> None:
    await driver.navigate_to_object(object_name)
    await driver.click_new_button()


async def fill_opportunity_form(driver: ResilientUIDriver, data: OpportunityFormData) -> List[Dict[str, str]]:
    filled = []
    for descriptor, value in data.field_entries():
        filled.append(await driver.fill_field(descriptor, value))
    return filled


async def _save_and_capture(driver: ResilientUIDriver, object_name: str) -> CreatedRecord:
    await driver.save_record()
    notification = await driver.capture_notification(Severity.SUCCESS)
    record_id = driver.extract_record_identifier()
    if not record_id:
        raise ToolError(
            name="create_record",
            payload={"object": object_name, "url": driver.current_url},
            message="Saved, but the page did not move to a record URL",
        )
    logger.info(f"Created {object_name} {record_id} via UI")
    return CreatedRecord(record_id=record_id, notification=notification)


async def create_opportunity(driver: ResilientUIDriver, data: OpportunityFormData) -> CreatedRecord:
    """Create an opportunity through the New modal and return its id and toast."""
    await open_new_record_modal(driver, "Opportunity")
    await fill_opportunity_form(driver, data)
    return await _save_and_capture(driver, "Opportunity")


async def create_account(
    driver: ResilientUIDriver, name: str, extra_fields: Optional[Dict[str, str]] = None
) -> CreatedRecord:
    await open_new_record_modal(driver, "Account")
    await driver.locate_and_fill("Account Name", name)
    for label, value in (extra_fields or {}).items():
        await driver.locate_and_fill(label, value)
    return await _save_and_capture(driver, "Account")


# ---- record data (API) --------------------------------------------------------------
def create_opportunity_via_api(
    api: CrmRestClient, data: OpportunityFormData, account_id: Optional[str] = None
) -> str:
    record: Dict[str, object] = {
        "Name": data.name,
        "CloseDate": data.close_date,
        "StageName": data.stage,
    }
    if account_id:
        record["AccountId"] = account_id
    if data.amount is not None:
        record["Amount"] = float(data.amount)
    if data.quantity is not None:
        record["Quantity__c"] = data.quantity
    if data.probability is not None:
        record["Probability"] = float(data.probability)
    return api.create_record("Opportunity", record)


def ensure_account(api: CrmRestClient, name: str) -> str:
    """Id of the account called ``name``, creating it when missing."""
    existing = api.find_record_id("Account", name)
    if existing:
        return existing
    return api.create_record("Account", {"Name": name})


# ---- record pages -------------------------------------------------------------------
async def open_record_by_name(
    driver: ResilientUIDriver, api: CrmRestClient, object_name: str, name: str
) -> str:
    record_id = api.find_record_id(object_name, name)
    if not record_id:
        raise ToolError(
            name="open_record_by_name",
            payload={"object": object_name, "name": name},
            message=f"{object_name} named {name!r} not found",
        )
    await driver.navigate_to_record(object_name, record_id)
    return record_id


async def opportunity_details(
    driver: ResilientUIDriver, labels: Tuple[str, ...] = OPPORTUNITY_DETAIL_FIELDS
) -> Dict[str, str]:
    """Displayed values for ``labels``; fields not on the layout are left out."""
    details: Dict[str, str] = {}
    for label in labels:
        try:
            details[label] = await driver.read_field_value(label)
        except FieldValueNotFound:
            logger.debug(f"{label!r} not shown on this layout")
    return details


async def verify_record_details(driver: ResilientUIDriver, expected: Dict[str, str]) -> Dict[str, str]:
    actual: Dict[str, str] = {}
    for label, value in expected.items():
        actual[label] = await driver.read_field_value(label)
        assert value in actual[label], f"{label}: expected {value!r} in {actual[label]!r}"
    return actual


async def opportunity_in_related_list(driver: ResilientUIDriver, opportunity_name: str) -> bool:
    """True when the open account lists ``opportunity_name`` under Opportunities."""
    await driver.wait_for_spinners()
    related_tab = driver.page.locator(RELATED_TAB).first
    if await related_tab.is_visible():
        await related_tab.click()
        await driver.wait_for_spinners()
    resolved = await strategies.first_visible(
        driver.page, opportunity_name, RELATED_LIST_LINK, driver.timeouts.assertion
    )
    return resolved is not None


# ---- users and permissions ----------------------------------------------------------
def create_platform_user(api: CrmRestClient, data: PlatformUserData) -> str:
    """Create (or reuse) a user and grant ``data.permission_set``."""
    user_id = api.get_user_id_by_username(data.username)
    if user_id:
        logger.info(f"Reusing existing user {data.username} ({user_id})")
    else:
        profile_id = api.get_profile_id_by_name(data.profile_name)
        user_id = api.create_user(
            UserSpec(
                first_name=data.first_name,
                last_name=data.last_name,
                email=data.email,
                username=data.username,
                profile_id=profile_id,
            )
        )
        logger.info(f"Created user {data.username} ({user_id}) with profile {data.profile_name}")

    if data.permission_set and not api.user_has_permission_set(user_id, data.permission_set):
        api.assign_permission_set(user_id, data.permission_set)
    if data.password:
        api.set_user_password(user_id, data.password)
    return user_id


def login_as_url(org_id: str, user_id: str) -> str:
    return (
        f"/servlet/servlet.su?oid={org_id}&suorgadminid={user_id}"
        "&retURL=%2Fhome%2Fhome.jsp&targetURL=%2Fhome%2Fhome.jsp"
    )


async def login_as_user(driver: ResilientUIDriver, api: CrmRestClient, username: str) -> StabilityReport:
    """Switch the admin's browser session to ``username`` via Login-As."""
    user_id = api.get_user_id_by_username(username)
    if not user_id:
        raise ToolError(
            name="login_as_user",
            payload={"username": username},
            message=f"User {username!r} not found",
        )
    report = await driver.goto(api.instance_url + login_as_url(api.get_org_id(), user_id))
    logger.info(f"Now logged in as {username}")
    return report


async def can_edit_record(driver: ResilientUIDriver) -> bool:
    return await driver.is_action_available("Edit")
