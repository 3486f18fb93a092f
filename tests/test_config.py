import pytest

from crm_e2e import env_defaults
from crm_e2e.config import E2eConfig, OrgProfile, Timeouts, settings


@pytest.fixture
def defaults_file(tmp_path, monkeypatch):
    path = tmp_path / ".env.defaults"
    monkeypatch.setenv("CRM_ENV_DEFAULTS", str(path))
    env_defaults.reload_env_defaults()
    yield path
    env_defaults.reload_env_defaults()


def test_env_prefers_environment_over_defaults_file(defaults_file, monkeypatch):
    defaults_file.write_text('CRM_TARGET_ORG="from-file"\n# comment\nCRM_CLI_COMMAND=sfdx\n', encoding="utf-8")
    env_defaults.reload_env_defaults()
    monkeypatch.setenv("CRM_TARGET_ORG", "from-env")
    monkeypatch.delenv("CRM_CLI_COMMAND", raising=False)

    assert env_defaults.env("CRM_TARGET_ORG") == "from-env"
    assert env_defaults.env("CRM_CLI_COMMAND") == "sfdx"
    assert env_defaults.env("CRM_UNSET_SETTING", "fallback") == "fallback"


def test_missing_defaults_file_is_fine(defaults_file):
    assert env_defaults.get_env_default("CRM_TARGET_ORG") is None


def test_timeouts_read_from_environment(defaults_file, monkeypatch):
    monkeypatch.setenv("CRM_TIMEOUT_PROBE", "750")

    timeouts = Timeouts.from_env()

    assert timeouts.probe == 750
    assert timeouts.navigation == 60000


def test_non_numeric_timeout_is_rejected(defaults_file, monkeypatch):
    monkeypatch.setenv("CRM_TIMEOUT_ACTION", "soon")
    with pytest.raises(ValueError, match="CRM_TIMEOUT_ACTION"):
        Timeouts.from_env()


def test_config_builds_without_any_settings(defaults_file, monkeypatch):
    for key in ("CRM_TARGET_ORG", "CRM_INSTANCE_URL", "CRM_SMOKE_TARGET_ORG", "CRM_E2E_LIVE"):
        monkeypatch.delenv(key, raising=False)

    config = E2eConfig()

    assert config.target_org == ""
    assert [profile.name for profile in config.profiles()] == ["primary"]
    assert config.live_enabled is False
    with pytest.raises(RuntimeError, match="Instance URL unknown"):
        config.url("/lightning/page/home")


def test_smoke_profile_is_read_only_by_default(defaults_file, monkeypatch):
    monkeypatch.setenv("CRM_TARGET_ORG", "dev-scratch")
    monkeypatch.setenv("CRM_SMOKE_TARGET_ORG", "shared-uat")

    config = E2eConfig()
    smoke = {profile.name: profile for profile in config.profiles()}["smoke"]

    assert smoke.target_org == "shared-uat"
    assert smoke.allow_writes is False
    assert config.allow_writes is True


def test_use_profile_restores_and_isolates_changes():
    original = settings.active
    profile = OrgProfile(name="temp", target_org="temp-org", instance_url="https://temp.my.salesforce.com")

    with settings.use_profile(profile) as active:
        assert settings.target_org == "temp-org"
        settings.instance_url = "https://moved.my.salesforce.com"
        assert settings.url("/lightning/page/home") == "https://moved.my.salesforce.com/lightning/page/home"

    assert settings.active is original
    assert active is not profile
    assert profile.instance_url == "https://temp.my.salesforce.com"
