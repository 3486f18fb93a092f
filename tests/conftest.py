import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from crm_e2e.config import Timeouts
from crm_e2e.driver import ResilientUIDriver

from fakes import INSTANCE_URL, FakePage


@pytest.fixture
def fake_page():
    return FakePage()


@pytest.fixture
def timeouts():
    """Small budgets so not-found paths fail fast."""
    return Timeouts(
        navigation=1000,
        action=200,
        assertion=200,
        spinner=200,
        network_idle=100,
        probe=50,
        session_shell=200,
        combobox_settle=5,
        lookup_settle=5,
        poll_interval=10,
    )


@pytest.fixture
def driver(fake_page, timeouts):
    return ResilientUIDriver(fake_page, timeouts=timeouts, base_url=INSTANCE_URL)
