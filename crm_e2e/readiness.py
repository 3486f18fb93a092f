"""Best-effort page stability waits.

A navigation or save walks ``NAVIGATING -> DOM_LOADED -> NETWORK_SETTLING ->
SPINNERS_CLEARING -> STABLE``. Each step is bounded and none of them raise on
timeout: Lightning keeps long-polling connections open and sometimes leaves a
spinner mounted, so the result reports whether settling happened and callers
carry on either way.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List

import anyio
from playwright.async_api import Error as PlaywrightError, Page, TimeoutError as PlaywrightTimeout

from crm_e2e.config import Timeouts

logger = logging.getLogger(__name__)

SPINNER_SELECTORS = (
    ".slds-spinner_container",
    ".slds-spinner",
    "[data-aura-rendered-by] .slds-spinner",
    ".forceSpinnerContainer",
    ".loadingSpinner",
    "lightning-spinner",
)

# Main content region of the application shell.
CONTENT_SELECTOR = ".oneContent, .desktop"


class Readiness(str, Enum):
    NAVIGATING = "navigating"
    DOM_LOADED = "domLoaded"
    NETWORK_SETTLING = "networkSettling"
    SPINNERS_CLEARING = "spinnersClearing"
    STABLE = "stable"


@dataclass
class SettleResult:
    settled: bool
    state: Readiness
    elapsed: float = 0.0
    detail: str = ""


@dataclass
class StabilityReport:
    """Outcome of a full stability wait."""

    steps: List[SettleResult] = field(default_factory=list)

    @property
    def settled(self) -> bool:
        return all(step.settled for step in self.steps)

    @property
    def state(self) -> Readiness:
        """Furthest state reached with every earlier step settled."""
        reached = Readiness.NAVIGATING
        for step in self.steps:
            if not step.settled:
                return reached
            reached = step.state
        return Readiness.STABLE if self.steps else reached

    def unsettled(self) -> List[SettleResult]:
        return [step for step in self.steps if not step.settled]


async def wait_for_dom(page: Page, timeout: int) -> SettleResult:
    started = anyio.current_time()
    try:
        await page.wait_for_load_state("domcontentloaded", timeout=timeout)
    except PlaywrightTimeout as exc:
        logger.warning(f"DOM not loaded within {timeout}ms: {exc}")
        return SettleResult(False, Readiness.DOM_LOADED, anyio.current_time() - started, str(exc))
    return SettleResult(True, Readiness.DOM_LOADED, anyio.current_time() - started)


async def wait_for_network_settled(page: Page, timeout: int) -> SettleResult:
    """Wait for network idle; give up quietly when the page never goes idle."""
    started = anyio.current_time()
    try:
        await page.wait_for_load_state("networkidle", timeout=timeout)
    except PlaywrightTimeout:
        # Lightning keeps streaming connections open; this is routine.
        logger.debug(f"Network did not go idle within {timeout}ms, continuing")
        return SettleResult(
            False, Readiness.NETWORK_SETTLING, anyio.current_time() - started, "network never idle"
        )
    return SettleResult(True, Readiness.NETWORK_SETTLING, anyio.current_time() - started)


async def _visible_spinners(page: Page) -> List[str]:
    visible: List[str] = []
    for selector in SPINNER_SELECTORS:
        try:
            if await page.locator(selector).first.is_visible():
                visible.append(selector)
        except PlaywrightError:
            # Detached while we looked at it; treat as gone.
            continue
    return visible


async def wait_for_spinners(page: Page, timeout: int, interval: int = 250) -> SettleResult:
    """Poll the known loading indicators until none is visible."""
    started = anyio.current_time()
    deadline = started + Timeouts.seconds(timeout)
    visible = await _visible_spinners(page)
    while visible:
        if anyio.current_time() >= deadline:
            logger.warning(f"Spinners still visible after {timeout}ms: {', '.join(visible)}")
            return SettleResult(
                False,
                Readiness.SPINNERS_CLEARING,
                anyio.current_time() - started,
                f"still visible: {', '.join(visible)}",
            )
        await anyio.sleep(Timeouts.seconds(interval))
        visible = await _visible_spinners(page)
    return SettleResult(True, Readiness.SPINNERS_CLEARING, anyio.current_time() - started)


async def wait_for_content(page: Page, timeout: int) -> SettleResult:
    """Wait for the main content region; absent in some contexts (setup pages)."""
    started = anyio.current_time()
    try:
        await page.locator(CONTENT_SELECTOR).first.wait_for(state="visible", timeout=timeout)
    except PlaywrightTimeout:
        return SettleResult(False, Readiness.STABLE, anyio.current_time() - started, "content region not shown")
    return SettleResult(True, Readiness.STABLE, anyio.current_time() - started)


async def wait_for_stable(page: Page, timeouts: Timeouts, content: bool = False) -> StabilityReport:
    """Run the full stability sequence; never raises on timeout."""
    report = StabilityReport()
    report.steps.append(await wait_for_dom(page, timeouts.navigation))
    report.steps.append(await wait_for_network_settled(page, timeouts.network_idle))
    report.steps.append(await wait_for_spinners(page, timeouts.spinner, timeouts.poll_interval))
    if content:
        report.steps.append(await wait_for_content(page, timeouts.assertion))
    logger.debug(f"Stability wait finished in state {report.state.value} (settled={report.settled})")
    return report
