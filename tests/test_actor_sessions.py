from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from crm_e2e.actor_sessions import ADMIN_ACTOR, ActorSessionManager
from crm_e2e.config import OrgProfile, settings
from crm_e2e.models import Credential
from crm_e2e.session import APP_SHELL_SELECTOR

from fakes import INSTANCE_URL, FakePage

pytestmark = pytest.mark.asyncio


@pytest.fixture(autouse=True)
def isolated_profile():
    with settings.use_profile(settings.active) as profile:
        yield profile


def _context_with_page():
    page = FakePage()
    page.on_goto.append(lambda p, url: p.add(APP_SHELL_SELECTOR))
    context = MagicMock()
    context.new_page = AsyncMock(return_value=page)
    context.close = AsyncMock()
    return context


@pytest.fixture
def client():
    client = MagicMock()
    client.new_context = AsyncMock(side_effect=lambda **kwargs: _context_with_page())
    return client


@pytest.fixture
def provider():
    return MagicMock(side_effect=lambda identity: {"accessToken": f"tok-{identity}", "instanceUrl": INSTANCE_URL})


@pytest.fixture
def manager(client, provider, timeouts):
    profile = OrgProfile(name="primary", target_org="admin-org", instance_url=INSTANCE_URL)
    return ActorSessionManager(client, profile=profile, provider=provider, timeouts=timeouts)


async def test_each_actor_gets_its_own_context_and_session(manager, client, monkeypatch):
    monkeypatch.setattr(settings, "auth_provider", "cli")

    admin = await manager.admin_session()
    viewer = await manager.create_session("viewer", "viewer@example.com")

    assert client.new_context.await_count == 2
    assert admin.context is not viewer.context
    assert admin.page.visited[-1].endswith("sid=tok-admin-org")
    assert viewer.page.visited[-1].endswith("sid=tok-viewer%40example.com")
    assert viewer.driver.base_url == INSTANCE_URL
    assert admin.identity == "admin-org"


async def test_admin_session_is_reused(manager, monkeypatch):
    monkeypatch.setattr(settings, "auth_provider", "cli")

    first = await manager.admin_session()
    second = await manager.admin_session()

    assert first is second
    assert manager.get_session(ADMIN_ACTOR) is first


async def test_duplicate_actor_is_rejected(manager):
    await manager.create_session("viewer", "viewer@example.com", establish=False)
    with pytest.raises(ValueError):
        await manager.create_session("viewer", "someone-else")


async def test_preacquired_credential_skips_provider(manager, provider):
    handle = await manager.create_session("viewer", "viewer@example.com", credential=Credential("given", INSTANCE_URL))

    provider.assert_not_called()
    assert handle.page.visited == [f"{INSTANCE_URL}/secur/frontdoor.jsp?sid=given"]
    assert handle.driver.base_url == INSTANCE_URL


async def test_close_all_closes_every_context(manager):
    viewer = await manager.create_session("viewer", "v", establish=False)
    other = await manager.create_session("other", "o", establish=False)
    other.context.close.side_effect = PlaywrightError("Target closed")

    async with manager:
        pass

    viewer.context.close.assert_awaited_once()
    other.context.close.assert_awaited_once()
    assert manager.sessions == {}
    assert manager.get_session("viewer") is None
