"""Unit tests for the best-effort stability waits."""
import pytest

from crm_e2e import readiness
from crm_e2e.readiness import Readiness, SettleResult, StabilityReport

from fakes import VanishingElement

pytestmark = pytest.mark.asyncio


async def test_stable_page_settles_every_step(fake_page, timeouts):
    report = await readiness.wait_for_stable(fake_page, timeouts)

    assert report.settled
    assert report.state is Readiness.STABLE
    assert fake_page.load_states == ["domcontentloaded", "networkidle"]


async def test_network_that_never_idles_is_not_an_error(fake_page, timeouts):
    fake_page.stalled_states.add("networkidle")

    report = await readiness.wait_for_stable(fake_page, timeouts)

    assert not report.settled
    assert report.state is Readiness.DOM_LOADED
    assert [step.state for step in report.unsettled()] == [Readiness.NETWORK_SETTLING]
    # Spinner check still ran after the network step gave up
    assert report.steps[-1].state is Readiness.SPINNERS_CLEARING
    assert report.steps[-1].settled


async def test_spinner_that_clears_is_waited_out(fake_page, timeouts):
    fake_page.elements[".slds-spinner"] = VanishingElement(checks=3)

    result = await readiness.wait_for_spinners(fake_page, timeouts.spinner, interval=5)

    assert result.settled
    assert result.state is Readiness.SPINNERS_CLEARING


async def test_stuck_spinner_times_out_without_raising(fake_page):
    fake_page.add("lightning-spinner")

    result = await readiness.wait_for_spinners(fake_page, timeout=40, interval=5)

    assert not result.settled
    assert "lightning-spinner" in result.detail


async def test_content_step_only_when_requested(fake_page, timeouts):
    fake_page.add(readiness.CONTENT_SELECTOR)

    without = await readiness.wait_for_stable(fake_page, timeouts)
    with_content = await readiness.wait_for_stable(fake_page, timeouts, content=True)

    assert len(without.steps) == 3
    assert len(with_content.steps) == 4
    assert with_content.settled


async def test_missing_content_region_is_reported(fake_page, timeouts):
    result = await readiness.wait_for_content(fake_page, timeouts.assertion)
    assert not result.settled


async def test_empty_report_has_not_left_navigating():
    report = StabilityReport()
    assert report.state is Readiness.NAVIGATING
    assert report.settled


async def test_state_stops_at_first_unsettled_step():
    report = StabilityReport(
        steps=[
            SettleResult(True, Readiness.DOM_LOADED),
            SettleResult(True, Readiness.NETWORK_SETTLING),
            SettleResult(False, Readiness.SPINNERS_CLEARING),
        ]
    )
    assert report.state is Readiness.NETWORK_SETTLING
