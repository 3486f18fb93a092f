"""Label-driven wrapper over a Playwright page for Lightning Experience.

Every operation takes the human-readable label of a field or control, never
a selector: selectors drift across record types and releases, labels do not.
Lookups go through the ordered strategy tables in ``crm_e2e.strategies``.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional, Union

import anyio
from playwright.async_api import Error as PlaywrightError, Locator, Page

from crm_e2e import readiness, strategies
from crm_e2e.config import Timeouts, settings
from crm_e2e.errors import (
    ButtonNotFound,
    FieldNotFound,
    FieldValueNotFound,
    NotificationTimeout,
    SeverityMismatch,
    ToolError,
    WaitTimeout,
)
from crm_e2e.models import (
    FieldDescriptor,
    InteractionKind,
    NotificationCapture,
    RecordIdentifier,
    Severity,
    classify_severity,
    parse_record_identifier,
)
from crm_e2e.readiness import SettleResult, StabilityReport

logger = logging.getLogger(__name__)


class ResilientUIDriver:
    """Label-driven Lightning UI operations over a single page."""

    def __init__(self, page: Page, timeouts: Optional[Timeouts] = None, base_url: Optional[str] = None) -> None:
        self._page = page
        self.timeouts = timeouts or settings.timeouts
        self.base_url = base_url
        self.current_url: str | None = None

    @property
    def page(self) -> Page:
        return self._page

    def _update_state(self) -> None:
        self.current_url = self._page.url

    def _absolute(self, url: str) -> str:
        if "://" in url or url.startswith("about:"):
            return url
        base = self.base_url or settings.instance_url
        if not base:
            return url
        return base.rstrip("/") + "/" + url.lstrip("/")

    # ---- readiness --------------------------------------------------------------
    async def wait_for_spinners(self) -> SettleResult:
        return await readiness.wait_for_spinners(self._page, self.timeouts.spinner, self.timeouts.poll_interval)

    async def settle(self, content: bool = False) -> StabilityReport:
        report = await readiness.wait_for_stable(self._page, self.timeouts, content=content)
        self._update_state()
        return report

    async def goto(self, url: str, content: bool = True) -> StabilityReport:
        """Navigate and run the full stability wait."""
        target = self._absolute(url)
        try:
            await self._page.goto(target, wait_until="domcontentloaded", timeout=self.timeouts.navigation)
        except PlaywrightError as exc:
            raise ToolError(name="goto", payload={"url": target}, message=str(exc))
        return await self.settle(content=content)

    async def navigate_to_object(self, object_name: str) -> StabilityReport:
        """Open the object's recent list view."""
        return await self.goto(f"/lightning/o/{object_name}/list?filterName=Recent")

    async def navigate_to_record(self, object_name: str, record_id: str) -> StabilityReport:
        return await self.goto(f"/lightning/r/{object_name}/{record_id}/view")

    # ---- filling ----------------------------------------------------------------
    async def _locate(self, label: str, kind: InteractionKind) -> strategies.Resolved:
        table = strategies.strategies_for(kind)
        resolved = await strategies.first_visible(self._page, label, table, self.timeouts.probe)
        if resolved is None:
            raise FieldNotFound(
                name="locate_and_fill",
                payload={"label": label, "kind": kind.value, "strategies": strategies.strategy_names(table)},
                message=f"Input field with label {label!r} not found",
            )
        return resolved

    async def locate_and_fill(
        self, label: str, value: str, kind: InteractionKind = InteractionKind.PLAIN_TEXT
    ) -> Dict[str, Any]:
        """Fill the field labelled ``label`` according to ``kind``."""
        await self.wait_for_spinners()
        resolved = await self._locate(label, kind)
        logger.debug(f"Filling {label!r} ({kind.value}) via {resolved.strategy.name}")

        if kind is InteractionKind.SINGLE_SELECT:
            await self._select_option(label, resolved.locator, value)
        elif kind is InteractionKind.RELATIONSHIP_LOOKUP:
            await self._pick_lookup_result(label, resolved.locator, value)
        elif kind is InteractionKind.DATE:
            await resolved.locator.clear()
            await resolved.locator.fill(value)
            # Close the date picker the input pops open
            await self._page.keyboard.press("Escape")
        else:
            await resolved.locator.clear()
            await resolved.locator.fill(value)

        return {"label": label, "value": value, "kind": kind.value, "strategy": resolved.strategy.name}

    async def fill_field(self, descriptor: FieldDescriptor, value: str) -> Dict[str, Any]:
        return await self.locate_and_fill(descriptor.label, value, descriptor.kind)

    async def _select_option(self, label: str, combobox: Locator, value: str) -> None:
        await combobox.locator(strategies.COMBOBOX_TRIGGER).first.click()
        await self._page.wait_for_timeout(self.timeouts.combobox_settle)

        option = await strategies.first_visible(
            self._page, value, strategies.COMBOBOX_OPTION, self.timeouts.probe
        )
        if option is None:
            raise WaitTimeout(
                name="select_option",
                payload={"label": label, "value": value,
                         "strategies": strategies.strategy_names(strategies.COMBOBOX_OPTION)},
                message=f"No option {value!r} offered for {label!r}",
            )
        await option.locator.click()
        await self.wait_for_spinners()

    async def _pick_lookup_result(self, label: str, lookup_input: Locator, value: str) -> None:
        await lookup_input.clear()
        await lookup_input.fill(value)
        await self._page.wait_for_timeout(self.timeouts.lookup_settle)

        result = await strategies.poll_first_visible(
            self._page, value, strategies.LOOKUP_RESULT, self.timeouts.action, self.timeouts.poll_interval
        )
        if result is None:
            raise WaitTimeout(
                name="lookup",
                payload={"label": label, "value": value, "timeout": self.timeouts.action},
                message=f"No lookup result containing {value!r} appeared for {label!r}",
            )
        await result.locator.click()
        await self.wait_for_spinners()

    # ---- clicking ---------------------------------------------------------------
    async def _click_first(self, name: str, label: str, table) -> Dict[str, Any]:
        await self.wait_for_spinners()
        resolved = await strategies.first_visible(
            self._page, label, table, self.timeouts.probe, require_enabled=True
        )
        if resolved is None:
            raise ButtonNotFound(
                name=name,
                payload={"label": label, "strategies": strategies.strategy_names(table)},
                message=f"Button with label {label!r} not found",
            )
        await resolved.locator.click()
        logger.debug(f"Clicked {label!r} via {resolved.strategy.name}")
        await self.wait_for_spinners()
        self._update_state()
        return {"label": label, "strategy": resolved.strategy.name, "url": self.current_url}

    async def locate_and_click(self, label: str) -> Dict[str, Any]:
        """Click the first visible, enabled control bearing ``label``."""
        return await self._click_first("locate_and_click", label, strategies.BUTTON)

    async def click_new_button(self) -> Dict[str, Any]:
        """Click "New" and wait for the create modal or page (best-effort)."""
        result = await self._click_first("click_new_button", "New", strategies.NEW_BUTTON)
        try:
            await self._page.locator(strategies.RECORD_FORM).first.wait_for(
                state="visible", timeout=self.timeouts.action
            )
        except PlaywrightError:
            # Some record types navigate to a full page instead of a modal
            logger.debug("No record form modal appeared after New")
        return result

    async def save_record(self) -> StabilityReport:
        """Click Save on the open record form, then wait for stability."""
        await self._click_first("save_record", "Save", strategies.SAVE_BUTTON)
        return await self.settle()

    async def click_record_action(self, action_name: str) -> Dict[str, Any]:
        """Open the record actions overflow menu and pick ``action_name``."""
        await self.wait_for_spinners()
        await self._page.locator(strategies.ACTIONS_MENU_BUTTON).first.click()
        await self._page.wait_for_timeout(self.timeouts.combobox_settle)
        return await self._click_first("click_record_action", action_name, strategies.MENU_ACTION)

    # ---- notifications ----------------------------------------------------------
    async def capture_notification(self, expected: Optional[Union[Severity, str]] = None) -> NotificationCapture:
        """Read the visible toast, check its severity, then dismiss it.

        Raises NotificationTimeout when no toast shows up and SeverityMismatch
        when one does with the wrong style.
        """
        if expected is not None:
            expected = Severity(expected)
        container = self._page.locator(strategies.TOAST_CONTAINER).first
        try:
            await container.wait_for(state="visible", timeout=self.timeouts.action)
        except PlaywrightError as exc:
            raise NotificationTimeout(
                name="capture_notification",
                payload={"expected": expected.value if expected else None, "timeout": self.timeouts.action},
                message=f"No notification appeared: {exc}",
            )

        try:
            message = await container.locator(strategies.TOAST_MESSAGE).first.text_content(
                timeout=self.timeouts.probe
            )
        except PlaywrightError:
            message = await container.text_content()
        try:
            class_attr = await container.locator(strategies.TOAST_BANNER).first.get_attribute(
                "class", timeout=self.timeouts.probe
            )
        except PlaywrightError:
            class_attr = None

        capture = NotificationCapture(message=message or "", severity=classify_severity(class_attr))
        logger.info(f"Notification ({capture.severity.value if capture.severity else 'unknown'}): {capture.message!r}")
        try:
            if expected is not None and capture.severity != expected:
                raise SeverityMismatch(
                    name="capture_notification",
                    payload={"expected": expected.value,
                             "actual": capture.severity.value if capture.severity else None,
                             "message": capture.message},
                    message=f"Expected a {expected.value} notification",
                )
            return capture
        finally:
            await self._dismiss_notification(container)

    async def _dismiss_notification(self, container: Locator) -> bool:
        close = container.locator(strategies.TOAST_CLOSE).first
        try:
            if not await close.is_visible():
                return False
            await close.click(timeout=self.timeouts.probe)
        except PlaywrightError as exc:
            # Toasts auto-dismiss; losing the race is fine.
            logger.debug(f"Could not dismiss notification: {type(exc).__name__}")
            return False
        return True

    async def wait_for_notification_gone(self) -> SettleResult:
        started = anyio.current_time()
        try:
            await self._page.locator(strategies.TOAST_CONTAINER).first.wait_for(
                state="hidden", timeout=self.timeouts.action
            )
        except PlaywrightError:
            return SettleResult(False, readiness.Readiness.STABLE, anyio.current_time() - started, "notification still shown")
        return SettleResult(True, readiness.Readiness.STABLE, anyio.current_time() - started)

    # ---- reading ----------------------------------------------------------------
    async def read_field_value(self, label: str) -> str:
        """Return the displayed value of ``label`` on a record detail page."""
        await self.wait_for_spinners()
        resolved = await strategies.first_visible(
            self._page, label, strategies.FIELD_VALUE, self.timeouts.probe
        )
        if resolved is None:
            raise FieldValueNotFound(
                name="read_field_value",
                payload={"label": label, "strategies": strategies.strategy_names(strategies.FIELD_VALUE)},
                message=f"Field value for {label!r} not found",
            )
        text = await resolved.locator.text_content()
        return (text or "").strip()

    def extract_record_identifier(self) -> RecordIdentifier:
        """Record id from the current URL, or "" when there is none."""
        self._update_state()
        return parse_record_identifier(self.current_url or "")

    async def page_title(self) -> str:
        await self.wait_for_spinners()
        text = await self._page.locator(strategies.PAGE_TITLE).first.text_content()
        return (text or "").strip()

    # ---- permission probes ------------------------------------------------------
    async def is_action_available(self, label: str) -> bool:
        """True when a visible, enabled control for ``label`` exists.

        Absence is an expected outcome in permission tests, so this never
        raises for a missing control.
        """
        await self.wait_for_spinners()
        resolved = await strategies.first_visible(
            self._page, label, strategies.ACTION, self.timeouts.probe, require_enabled=True
        )
        return resolved is not None

    async def is_field_editable(self, label: str) -> bool:
        await self.wait_for_spinners()
        resolved = await strategies.first_visible(
            self._page, label, strategies.EDIT_INDICATOR, self.timeouts.probe
        )
        return resolved is not None

    # ---- artifacts --------------------------------------------------------------
    async def screenshot(self, name: str) -> str:
        """Full-page PNG into SCREENSHOT_DIR."""
        screenshot_dir = settings.screenshot_dir or os.environ.get("SCREENSHOT_DIR")
        if not screenshot_dir:
            raise ToolError(
                name="screenshot",
                payload={"name": name},
                message="SCREENSHOT_DIR must be set to capture screenshots",
            )
        os.makedirs(screenshot_dir, exist_ok=True)
        path = os.path.join(screenshot_dir, f"{name}.png")
        try:
            await self._page.screenshot(path=path, full_page=True)
        except PlaywrightError as exc:
            raise ToolError(name="screenshot", payload={"name": name, "path": path}, message=str(exc))
        return path
