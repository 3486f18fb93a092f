"""Shared configuration for the CRM end-to-end suite.

Values come from environment variables, falling back to the workspace
``.env.defaults`` file (see ``crm_e2e.env_defaults``):

- CRM_TARGET_ORG: CLI alias or username of the org under test
- CRM_INSTANCE_URL: instance URL used when the credential source omits one
- CRM_AUTH_PROVIDER: "cli" (default) or "soap"
- CRM_TIMEOUT_<NAME>: per-wait budgets in milliseconds (see ``Timeouts``)

Importing this module never fails on missing settings; operations that need
a value raise when they are called.
"""
from __future__ import annotations

from contextlib import contextmanager
from copy import deepcopy
from dataclasses import dataclass, fields
from typing import Dict, Iterator, List, Optional
from urllib.parse import urljoin

from crm_e2e.env_defaults import env


_TRUTHY = {"1", "true", "yes", "on"}


def _flag(key: str, default: str) -> bool:
    return (env(key, default) or "").strip().lower() in _TRUTHY


@dataclass
class Timeouts:
    """Wait budgets in milliseconds.

    ``probe`` bounds a single structural strategy; ``action`` bounds waits the
    caller depends on (notifications, lookup results). ``network_idle`` and
    ``spinner`` are best-effort and never fail an operation.
    """

    navigation: int = 60000
    action: int = 30000
    assertion: int = 15000
    spinner: int = 60000
    network_idle: int = 10000
    probe: int = 2000
    session_shell: int = 60000
    combobox_settle: int = 500
    lookup_settle: int = 1000
    poll_interval: int = 250

    @classmethod
    def from_env(cls) -> "Timeouts":
        values: Dict[str, int] = {}
        for f in fields(cls):
            raw = env(f"CRM_TIMEOUT_{f.name.upper()}")
            if raw is None:
                continue
            try:
                values[f.name] = int(raw)
            except ValueError:
                raise ValueError(f"CRM_TIMEOUT_{f.name.upper()} must be an integer (ms), got {raw!r}")
        return cls(**values)

    @staticmethod
    def seconds(ms: int) -> float:
        return ms / 1000.0


@dataclass
class OrgProfile:
    """Concrete org + API settings for one test target."""

    name: str
    target_org: str
    instance_url: str = ""
    api_version: str = "60.0"
    allow_writes: bool = True


class E2eConfig:
    """Configuration loaded from the environment.

    Holds one active ``OrgProfile`` (``primary`` by default) plus an optional
    read-only ``smoke`` profile when CRM_SMOKE_TARGET_ORG is set.
    """

    def __init__(self) -> None:
        self.playwright_headless: bool = _flag("PLAYWRIGHT_HEADLESS", "true")
        self.browser_type: str = env("PLAYWRIGHT_BROWSER", "chromium") or "chromium"
        self.viewport_width: int = int(env("CRM_VIEWPORT_WIDTH", "1920") or 1920)
        self.viewport_height: int = int(env("CRM_VIEWPORT_HEIGHT", "1080") or 1080)
        self.screenshot_prefix: str = env("CRM_SCREENSHOT_PREFIX", "crm-e2e") or "crm-e2e"
        self.screenshot_dir: Optional[str] = env("SCREENSHOT_DIR")

        self.auth_provider: str = (env("CRM_AUTH_PROVIDER", "cli") or "cli").lower()
        self.cli_command: str = env("CRM_CLI_COMMAND", "sf") or "sf"
        self.cli_timeout: float = float(env("CRM_CLI_TIMEOUT", "60") or 60)
        self.session_path: str = env("CRM_SESSION_PATH", "/secur/frontdoor.jsp") or "/secur/frontdoor.jsp"
        self.username: Optional[str] = env("CRM_USERNAME")
        self.password: Optional[str] = env("CRM_PASSWORD")
        self.is_sandbox: bool = _flag("CRM_IS_SANDBOX", "false")
        self.live_enabled: bool = _flag("CRM_E2E_LIVE", "0")

        self.timeouts: Timeouts = Timeouts.from_env()

        primary = OrgProfile(
            name="primary",
            target_org=env("CRM_TARGET_ORG", "") or "",
            instance_url=env("CRM_INSTANCE_URL", "") or "",
            api_version=env("CRM_API_VERSION", "60.0") or "60.0",
            allow_writes=_flag("CRM_ALLOW_WRITES", "1"),
        )

        # Optional second org, e.g. a shared sandbox we only read from
        smoke_org = env("CRM_SMOKE_TARGET_ORG")
        smoke_profile: OrgProfile | None = None
        if smoke_org:
            smoke_profile = OrgProfile(
                name="smoke",
                target_org=smoke_org,
                instance_url=env("CRM_SMOKE_INSTANCE_URL", primary.instance_url) or "",
                api_version=env("CRM_SMOKE_API_VERSION", primary.api_version) or primary.api_version,
                allow_writes=_flag("CRM_SMOKE_ALLOW_WRITES", "0"),
            )

        self._profiles: Dict[str, OrgProfile] = {primary.name: primary}
        if smoke_profile:
            self._profiles[smoke_profile.name] = smoke_profile

        self._active: OrgProfile = primary

    # ---- active profile helpers -------------------------------------------------
    @property
    def active(self) -> OrgProfile:
        return self._active

    @property
    def target_org(self) -> str:
        return self._active.target_org

    @property
    def instance_url(self) -> str:
        return self._active.instance_url

    @instance_url.setter
    def instance_url(self, value: str) -> None:
        self._active.instance_url = value

    @property
    def api_version(self) -> str:
        return self._active.api_version

    @property
    def allow_writes(self) -> bool:
        return self._active.allow_writes

    # ---- profile orchestration --------------------------------------------------
    def profiles(self) -> List[OrgProfile]:
        return list(self._profiles.values())

    @contextmanager
    def use_profile(self, profile: OrgProfile) -> Iterator[OrgProfile]:
        """Temporarily switch the active profile.

        The profile is deep-copied so mutations inside the block (for example
        learning the instance URL from a credential) do not leak out of it.
        """
        previous = self._active
        self._active = deepcopy(profile)
        try:
            yield self._active
        finally:
            self._active = previous

    # ---- utility helpers --------------------------------------------------------
    def url(self, path: str) -> str:
        """Return an absolute URL on the active instance for ``path``."""
        if not self.instance_url:
            raise RuntimeError(
                "Instance URL unknown: set CRM_INSTANCE_URL"
            )
        return urljoin(self.instance_url.rstrip("/") + "/", path.lstrip("/"))


# Singleton instance - initialized on first import
settings = E2eConfig()
