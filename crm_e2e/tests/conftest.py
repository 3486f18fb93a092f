import sys
from pathlib import Path

import pytest
import pytest_asyncio

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from crm_e2e.actor_sessions import ActorSessionManager
from crm_e2e.api_client import CrmRestClient
from crm_e2e.config import OrgProfile, settings
from crm_e2e.driver import ResilientUIDriver
from crm_e2e.playwright_client import PlaywrightClient
from crm_e2e.session import build_bootstrapper


def pytest_configure(config):
    config.addinivalue_line("markers", "live: drives a real org; needs CRM_E2E_LIVE=1 and an authenticated CLI org")


def pytest_collection_modifyitems(config, items):
    if settings.live_enabled:
        return
    skip_live = pytest.mark.skip(reason="set CRM_E2E_LIVE=1 to run against a real org")
    for item in items:
        if "live" in item.keywords:
            item.add_marker(skip_live)


def _profile_id(profile: OrgProfile) -> str:
    return profile.name


@pytest.fixture(params=settings.profiles(), ids=_profile_id)
def active_profile(request):
    """Run each live test once per configured org profile."""
    profile: OrgProfile = request.param
    with settings.use_profile(profile):
        yield profile


@pytest.fixture
def writable_profile(active_profile):
    if not active_profile.allow_writes:
        pytest.skip(f"profile {active_profile.name} is read-only")
    return active_profile


@pytest_asyncio.fixture()
async def playwright_client():
    async with PlaywrightClient(headless=settings.playwright_headless) as client:
        yield client


@pytest_asyncio.fixture()
async def admin_bootstrapper(playwright_client, active_profile):
    bootstrapper = build_bootstrapper(playwright_client.page, active_profile)
    await bootstrapper.establish_session()
    return bootstrapper


@pytest_asyncio.fixture()
async def driver(playwright_client, admin_bootstrapper):
    return ResilientUIDriver(playwright_client.page, base_url=admin_bootstrapper.credential.instance_url)


@pytest.fixture
def api(admin_bootstrapper, active_profile):
    client = CrmRestClient(admin_bootstrapper.credential, api_version=active_profile.api_version)
    yield client
    client.close()


@pytest_asyncio.fixture()
async def actor_sessions(playwright_client, active_profile):
    """Isolated per-actor contexts; all closed after the test."""
    async with ActorSessionManager(playwright_client, profile=active_profile) as manager:
        yield manager
