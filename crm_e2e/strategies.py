"""Structural strategies for finding Lightning controls by their visible label.

The same logical field renders differently in inline edit, detail view,
create modal and list view, so every lookup is an ordered table of named
strategies. Tables are ordered from the most tightly scoped match to the
loosest; resolution takes the first visible match and never merges results.

Templates use ``{css}`` for the label escaped as a CSS string and ``{xpath}``
for the label as an XPath literal.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import anyio
from playwright.async_api import Error as PlaywrightError, Locator, Page

from crm_e2e.config import Timeouts
from crm_e2e.models import InteractionKind

logger = logging.getLogger(__name__)


def css_string(value: str) -> str:
    """Escape ``value`` for use inside a double-quoted CSS/Playwright string."""
    return value.replace("\\", "\\\\").replace('"', '\\"')


def xpath_literal(value: str) -> str:
    """Safely embed string literals inside XPath expressions."""
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'

    parts = value.split("'")
    concat_parts: List[str] = []
    for idx, part in enumerate(parts):
        if part:
            concat_parts.append(f"'{part}'")
        if idx != len(parts) - 1:
            concat_parts.append("\"'\"")
    return "concat(" + ", ".join(concat_parts) + ")"


@dataclass(frozen=True)
class Strategy:
    name: str
    template: str

    def selector(self, text: str = "") -> str:
        return self.template.format(css=css_string(text), xpath=xpath_literal(text))


@dataclass
class Resolved:
    strategy: Strategy
    selector: str
    locator: Locator


_LABEL_XPATH = "//label[contains(normalize-space(.), {xpath})]"

TEXT_INPUT: Tuple[Strategy, ...] = (
    Strategy("lightning-input-by-field-label", 'lightning-input[field-label="{css}"] input'),
    Strategy("input-field-by-field-name", 'lightning-input-field[field-name*="{css}"] input'),
    Strategy("input-by-name", 'input[name="{css}"]'),
    Strategy("textarea-by-field-label", 'lightning-textarea[field-label="{css}"] textarea'),
    Strategy("form-element-input", 'div.slds-form-element:has(label:has-text("{css}")) input'),
    Strategy("form-element-textarea", 'div.slds-form-element:has(label:has-text("{css}")) textarea'),
    Strategy(
        "control-following-label",
        "xpath=" + _LABEL_XPATH + "/following::*[self::input or self::textarea][1]",
    ),
)

DATE_INPUT: Tuple[Strategy, ...] = (
    Strategy("lightning-input-by-label", 'lightning-input[label="{css}"] input'),
    Strategy("datepicker-by-label", 'lightning-datepicker[label="{css}"] input'),
    Strategy("datepicker-containing-label", 'lightning-datepicker:has(label:has-text("{css}")) input'),
) + TEXT_INPUT

COMBOBOX: Tuple[Strategy, ...] = (
    Strategy("lightning-combobox-by-label", 'lightning-combobox[label="{css}"]'),
    Strategy("picklist-by-data-field", 'lightning-picklist[data-field="{css}"]'),
    Strategy("combobox-above-label", "xpath=" + _LABEL_XPATH + "/ancestor::lightning-combobox[1]"),
    Strategy(
        "combobox-above-span",
        "xpath=//span[contains(normalize-space(.), {xpath})]/ancestor::lightning-combobox[1]",
    ),
    Strategy(
        "form-element-base-combobox",
        'div.slds-form-element:has(label:has-text("{css}")) lightning-base-combobox',
    ),
)

# Clickable part of an open/close combobox, relative to the combobox container.
COMBOBOX_TRIGGER = 'button, input[role="combobox"], [role="combobox"]'

COMBOBOX_OPTION: Tuple[Strategy, ...] = (
    Strategy("option-by-data-value", 'lightning-base-combobox-item[data-value="{css}"]'),
    Strategy("role-option-by-data-value", '[role="option"][data-value="{css}"]'),
    Strategy("option-by-title", '[role="option"]:has(span[title="{css}"])'),
    Strategy("option-by-exact-text", '[role="option"]:text-is("{css}")'),
)

LOOKUP: Tuple[Strategy, ...] = (
    Strategy("lightning-lookup-by-label", 'lightning-lookup[label="{css}"] input'),
    Strategy("input-field-lookup", 'lightning-input-field[data-field="{css}"] lightning-lookup input'),
    Strategy("force-lookup-containing-label", 'force-lookup:has(label:has-text("{css}")) input'),
    Strategy(
        "grouped-combobox-above-label",
        "xpath=" + _LABEL_XPATH + "/ancestor::lightning-grouped-combobox[1]//input",
    ),
    Strategy(
        "form-element-lookup-input",
        'div.slds-form-element:has(label:has-text("{css}")) input[role="combobox"]',
    ),
    Strategy("input-following-label", "xpath=" + _LABEL_XPATH + "/following::input[1]"),
)

LOOKUP_RESULT: Tuple[Strategy, ...] = (
    Strategy("combobox-item-containing", 'lightning-base-combobox-item:has-text("{css}")'),
    Strategy("role-option-containing", '[role="option"]:has-text("{css}")'),
)

BUTTON: Tuple[Strategy, ...] = (
    Strategy("button-by-name", 'button[name="{css}"]'),
    Strategy("button-exact-text", 'button:text-is("{css}")'),
    Strategy("button-containing-text", 'button:has-text("{css}")'),
    Strategy("lightning-button", 'lightning-button:has-text("{css}") button'),
    Strategy("slds-link-button", 'a.slds-button:has-text("{css}")'),
    Strategy("input-by-value", 'input[value="{css}"]'),
    Strategy("by-title", '[title="{css}"]'),
)

# Exact "New" only; "New Contact" and friends share the header.
NEW_BUTTON: Tuple[Strategy, ...] = (
    Strategy("list-view-action", 'a[title="New"]'),
    Strategy("button-by-name", 'button[name="New"]'),
    Strategy("lightning-button-exact", 'lightning-button:text-is("New") button'),
    Strategy("button-exact-text", 'button:text-is("New")'),
)

# "Save" must not hit "Save & New".
SAVE_BUTTON: Tuple[Strategy, ...] = (
    Strategy("save-edit-button", 'button[name="SaveEdit"]'),
    Strategy("slds-save-button", 'button.slds-button:text-is("Save")'),
    Strategy("lightning-save-button", 'lightning-button:text-is("Save") button'),
)

ACTION: Tuple[Strategy, ...] = (
    Strategy("button-by-name", 'button[name="{css}"]'),
    Strategy("action-ribbon-link", 'runtime_platform_actions-action-renderer a[title="{css}"]'),
    Strategy("reveals-target", 'a[data-target-reveals*="{css}"]'),
    Strategy("lightning-button", 'lightning-button:has-text("{css}")'),
    Strategy("button-exact-text", 'button:text-is("{css}")'),
)

MENU_ACTION: Tuple[Strategy, ...] = (
    Strategy("action-renderer-link", 'runtime_platform_actions-action-renderer a[title="{css}"]'),
    Strategy("menu-item-by-title", 'lightning-menu-item[title="{css}"]'),
)

ACTIONS_MENU_BUTTON = (
    'runtime_platform_actions-actions-ribbon lightning-button-menu button, '
    '[data-target-reveals*="action"]'
)

_OUTPUT_FIELD = 'force-record-output-field:has(span:text-is("{css}"))'
_LAYOUT_ITEM = 'records-record-layout-item[field-label="{css}"]'

FIELD_VALUE: Tuple[Strategy, ...] = (
    Strategy("output-field-text", _OUTPUT_FIELD + " lightning-formatted-text"),
    Strategy("output-field-number", _OUTPUT_FIELD + " lightning-formatted-number"),
    Strategy("output-field-link", _OUTPUT_FIELD + " a"),
    Strategy("output-field-url", _OUTPUT_FIELD + " lightning-formatted-url"),
    Strategy("layout-item-text", _LAYOUT_ITEM + " lightning-formatted-text"),
    Strategy("layout-item-number", _LAYOUT_ITEM + " lightning-formatted-number"),
    Strategy("layout-item-link", _LAYOUT_ITEM + " a"),
    Strategy("form-element-static", 'div.slds-form-element:has(span:has-text("{css}")) .slds-form-element__static'),
)

EDIT_INDICATOR: Tuple[Strategy, ...] = (
    Strategy("inline-edit-button", _OUTPUT_FIELD + ' button[title^="Edit"]'),
    Strategy("layout-item-button", _LAYOUT_ITEM + " button"),
    Strategy("enabled-lightning-input", 'lightning-input[label="{css}"]:not([disabled])'),
)

RECORD_FORM = "records-record-layout-event-broker, .modal-container, .slds-modal"
PAGE_TITLE = "h1.slds-page-header__title, .entityNameTitle, records-entity-label"

TOAST_CONTAINER = "div.toastContainer"
TOAST_MESSAGE = ".toastMessage, .slds-notify__content"
TOAST_BANNER = ".slds-notify, .forceToastMessage"
TOAST_CLOSE = "button.slds-notify__close, lightning-button-icon"

_LOCATE_TABLES: Dict[InteractionKind, Tuple[Strategy, ...]] = {
    InteractionKind.PLAIN_TEXT: TEXT_INPUT,
    InteractionKind.CURRENCY_AMOUNT: TEXT_INPUT,
    InteractionKind.DATE: DATE_INPUT,
    InteractionKind.SINGLE_SELECT: COMBOBOX,
    InteractionKind.RELATIONSHIP_LOOKUP: LOOKUP,
}


def strategies_for(kind: InteractionKind) -> Tuple[Strategy, ...]:
    return _LOCATE_TABLES[kind]


async def first_visible(
    page: Page,
    text: str,
    strategies: Sequence[Strategy],
    probe_timeout: int,
    require_enabled: bool = False,
) -> Optional[Resolved]:
    """Probe ``strategies`` in order; return the first visible match or None.

    Each probe waits at most ``probe_timeout`` ms.
    """
    for strategy in strategies:
        selector = strategy.selector(text)
        locator = page.locator(selector).first
        try:
            await locator.wait_for(state="visible", timeout=probe_timeout)
        except PlaywrightError as exc:
            logger.debug(f"Strategy {strategy.name} found nothing for {text!r}: {type(exc).__name__}")
            continue
        if require_enabled:
            try:
                enabled = await locator.is_enabled(timeout=probe_timeout)
            except PlaywrightError:
                enabled = False
            if not enabled:
                logger.debug(f"Strategy {strategy.name} matched a disabled control for {text!r}")
                continue
        logger.debug(f"Strategy {strategy.name} matched {text!r}")
        return Resolved(strategy, selector, locator)
    return None


async def poll_first_visible(
    page: Page,
    text: str,
    strategies: Sequence[Strategy],
    timeout: int,
    interval: int = 250,
) -> Optional[Resolved]:
    """Sweep ``strategies`` without blocking until one is visible or time runs out.

    Used for content that renders asynchronously after input (lookup results,
    banners), where no single strategy deserves the whole budget.
    """
    deadline = anyio.current_time() + Timeouts.seconds(timeout)
    while True:
        for strategy in strategies:
            selector = strategy.selector(text)
            locator = page.locator(selector).first
            try:
                visible = await locator.is_visible()
            except PlaywrightError:
                visible = False
            if visible:
                return Resolved(strategy, selector, locator)
        if anyio.current_time() >= deadline:
            return None
        await anyio.sleep(Timeouts.seconds(interval))


def strategy_names(strategies: Sequence[Strategy]) -> List[str]:
    return [strategy.name for strategy in strategies]
