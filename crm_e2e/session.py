"""Browser session bootstrap by token injection.

An identity that is already authenticated outside the browser (a CLI org
alias, or a username/password pair for the partner SOAP login) is turned into
an access token, and the browser navigates straight to the session-injection
endpoint with it. The browser never sees a login form, so MFA prompts and
login-page markup changes do not matter.

The bootstrapper is the only place that acquires credentials; the UI driver
never does.
"""
from __future__ import annotations

import json
import logging
import subprocess
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, Mapping, Optional
from urllib.parse import quote, urlparse
from xml.sax.saxutils import escape

import anyio
import httpx
from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError, Page

from crm_e2e import readiness
from crm_e2e.config import OrgProfile, Timeouts, settings
from crm_e2e.errors import (
    CredentialSourceError,
    CredentialUnavailable,
    SessionEstablishmentFailed,
)
from crm_e2e.models import Credential
from crm_e2e.readiness import StabilityReport

logger = logging.getLogger(__name__)

# identity -> structured document with at least accessToken / instanceUrl
CredentialProvider = Callable[[str], Mapping[str, Any]]

# Rendered once the Lightning application shell is up.
APP_SHELL_SELECTOR = "one-appnav, .oneContent, .desktop, one-app-nav-bar"

_TOKEN_KEYS = ("accessToken", "access_token", "sessionId")
_INSTANCE_KEYS = ("instanceUrl", "instance_url", "serverUrl")


class CliCredentialProvider:
    """Reads the session of an org the CLI is already logged in to.

    Runs ``<command> org display --target-org <identity> --json``.
    """

    def __init__(self, command: Optional[str] = None, timeout: Optional[float] = None) -> None:
        self.command = command or settings.cli_command
        self.timeout = timeout or settings.cli_timeout

    def argv(self, identity: str) -> list[str]:
        argv = [self.command, "org", "display", "--json"]
        if identity:
            argv[3:3] = ["--target-org", identity]
        return argv

    def __call__(self, identity: str) -> Mapping[str, Any]:
        argv = self.argv(identity)
        try:
            result = subprocess.run(argv, capture_output=True, text=True, timeout=self.timeout)
        except FileNotFoundError as exc:
            raise CredentialSourceError(f"CLI not found: {self.command}") from exc
        except subprocess.TimeoutExpired as exc:
            raise CredentialSourceError(f"CLI did not answer within {self.timeout}s") from exc

        try:
            document = json.loads(result.stdout or "")
        except ValueError as exc:
            detail = (result.stderr or result.stdout or "").strip()[:500]
            raise CredentialSourceError(
                f"CLI returned unparsable output (exit {result.returncode}): {detail}"
            ) from exc

        if result.returncode != 0:
            message = document.get("message") if isinstance(document, dict) else None
            raise CredentialSourceError(
                f"CLI failed for {identity or 'default org'} (exit {result.returncode}): {message or result.stderr.strip()}"
            )
        return document


class SoapLoginProvider:
    """Partner SOAP ``login`` call for orgs the CLI is not logged in to.

    ``passwords`` maps usernames to passwords; the configured CRM_USERNAME /
    CRM_PASSWORD pair is always included.
    """

    SOAP_PATH = "/services/Soap/u/{version}"
    ENVELOPE = (
        '<?xml version="1.0" encoding="utf-8" ?>'
        '<env:Envelope xmlns:xsd="http://www.w3.org/2001/XMLSchema" '
        'xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance" '
        'xmlns:env="http://schemas.xmlsoap.org/soap/envelope/">'
        "<env:Body>"
        '<n1:login xmlns:n1="urn:partner.soap.sforce.com">'
        "<n1:username>{username}</n1:username>"
        "<n1:password>{password}</n1:password>"
        "</n1:login>"
        "</env:Body>"
        "</env:Envelope>"
    )

    def __init__(
        self,
        passwords: Optional[Mapping[str, str]] = None,
        sandbox: Optional[bool] = None,
        api_version: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.passwords: Dict[str, str] = dict(passwords or {})
        if settings.username and settings.password:
            self.passwords.setdefault(settings.username, settings.password)
        self.sandbox = settings.is_sandbox if sandbox is None else sandbox
        self.api_version = api_version or settings.api_version
        self.timeout = timeout
        self.transport = transport

    @property
    def login_url(self) -> str:
        host = "https://test.salesforce.com" if self.sandbox else "https://login.salesforce.com"
        return host + self.SOAP_PATH.format(version=self.api_version)

    def __call__(self, identity: str) -> Mapping[str, Any]:
        username = identity or settings.username or ""
        password = self.passwords.get(username)
        if not username or password is None:
            raise CredentialSourceError(f"No password known for {username or 'default user'}")

        body = self.ENVELOPE.format(username=escape(username), password=escape(password))
        try:
            with httpx.Client(timeout=self.timeout, transport=self.transport) as client:
                response = client.post(
                    self.login_url,
                    content=body.encode("utf-8"),
                    headers={"Content-Type": "text/xml;charset=UTF-8", "SOAPAction": "login"},
                )
        except httpx.HTTPError as exc:
            raise CredentialSourceError(f"SOAP login request failed: {exc}") from exc

        soup = BeautifulSoup(response.text, "html.parser")
        if response.status_code >= 400:
            fault = _soap_text(soup, "faultstring")
            raise CredentialSourceError(
                f"SOAP login rejected ({response.status_code}): {fault or response.text[:200]}"
            )

        session_id = _soap_text(soup, "sessionId")
        server_url = _soap_text(soup, "serverUrl")
        document: Dict[str, Any] = {}
        if session_id:
            document["accessToken"] = session_id
        if server_url:
            parsed = urlparse(server_url)
            document["instanceUrl"] = f"{parsed.scheme}://{parsed.netloc}"
        return document


def _soap_text(soup: BeautifulSoup, name: str) -> Optional[str]:
    """Text of the first element named ``name``, whatever its namespace prefix."""
    wanted = name.lower()
    tag = soup.find(lambda t: t.name.rsplit(":", 1)[-1] == wanted)
    if tag is None:
        return None
    return tag.get_text(strip=True) or None


def parse_credential(document: Any, fallback_instance_url: str = "") -> Credential:
    """Pull a Credential out of a provider document.

    Accepts the CLI envelope ``{"status": 0, "result": {...}}`` as well as a
    bare mapping.
    """
    if not isinstance(document, Mapping):
        raise CredentialSourceError(f"Expected a JSON object from the credential source, got {type(document).__name__}")
    body = document.get("result", document)
    if not isinstance(body, Mapping):
        raise CredentialSourceError("Credential source 'result' is not an object")

    token = next((body[key] for key in _TOKEN_KEYS if body.get(key)), None)
    if not token or not isinstance(token, str):
        raise CredentialUnavailable("Credential source response carries no access token")

    instance_url = next((body[key] for key in _INSTANCE_KEYS if body.get(key)), None) or fallback_instance_url
    if not instance_url or not isinstance(instance_url, str):
        raise CredentialSourceError("Credential source response carries no instance URL")
    return Credential(access_token=token, instance_url=instance_url.rstrip("/"))


class SessionBootstrapper:
    """Turns an out-of-band identity into an authenticated browser session."""

    def __init__(
        self,
        page: Page,
        identity: str,
        provider: Optional[CredentialProvider] = None,
        timeouts: Optional[Timeouts] = None,
        session_path: Optional[str] = None,
        fallback_instance_url: str = "",
    ) -> None:
        self._page = page
        self._identity = identity
        self._provider = provider or CliCredentialProvider()
        self._credential: Optional[Credential] = None
        self.timeouts = timeouts or settings.timeouts
        self.session_path = session_path or settings.session_path
        self.fallback_instance_url = fallback_instance_url

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    def acquire_credential(self) -> Credential:
        """Ask the provider for the current identity's credential and cache it."""
        try:
            document = self._provider(self._identity)
        except (CredentialSourceError, CredentialUnavailable):
            raise
        except Exception as exc:
            raise CredentialSourceError(f"Credential provider failed for {self._identity!r}: {exc}") from exc

        credential = parse_credential(document, self.fallback_instance_url)
        self._credential = credential
        logger.info(f"Acquired credential for {self._identity or 'default org'} on {credential.instance_url}")
        return credential

    def invalidate(self) -> None:
        """Forget the cached credential; the next session re-authenticates."""
        self._credential = None

    def session_url(self, credential: Credential, ret_url: Optional[str] = None) -> str:
        url = f"{credential.instance_url}{self.session_path}?sid={quote(credential.access_token, safe='')}"
        if ret_url:
            url += f"&retURL={quote(ret_url, safe='')}"
        return url

    async def establish_session(self, ret_url: Optional[str] = None) -> StabilityReport:
        """Inject the session and wait for the application shell."""
        credential = self._credential
        if credential is None:
            credential = await anyio.to_thread.run_sync(self.acquire_credential)

        target = self.session_url(credential, ret_url)
        try:
            await self._page.goto(target, wait_until="domcontentloaded", timeout=self.timeouts.navigation)
        except PlaywrightError as exc:
            raise SessionEstablishmentFailed(
                f"Session injection for {self._identity or 'default org'} failed: {exc}"
            ) from exc

        report = await readiness.wait_for_stable(self._page, self.timeouts)
        try:
            await self._page.locator(APP_SHELL_SELECTOR).first.wait_for(
                state="visible", timeout=self.timeouts.session_shell
            )
        except PlaywrightError as exc:
            raise SessionEstablishmentFailed(
                f"Application shell never rendered for {self._identity or 'default org'} "
                f"(landed on {urlparse(self._page.url).path or self._page.url})"
            ) from exc

        logger.info(f"Browser session established for {self._identity or 'default org'}")
        return report

    @contextmanager
    def use_identity(self, identity: str, credential: Optional[Credential] = None) -> Iterator["SessionBootstrapper"]:
        """Temporarily act as ``identity``; the previous identity and its
        cached credential are restored on exit, including on error."""
        previous = (self._identity, self._credential)
        self._identity = identity
        self._credential = credential
        try:
            yield self
        finally:
            self._identity, self._credential = previous

    async def establish_session_as(
        self, identity: str, credential: Optional[Credential] = None
    ) -> StabilityReport:
        """Establish a session as another identity without keeping it."""
        with self.use_identity(identity, credential):
            return await self.establish_session()


def build_provider() -> CredentialProvider:
    if settings.auth_provider == "soap":
        return SoapLoginProvider()
    if settings.auth_provider != "cli":
        raise ValueError(f"Unknown CRM_AUTH_PROVIDER: {settings.auth_provider!r} (expected 'cli' or 'soap')")
    return CliCredentialProvider()


def build_bootstrapper(page: Page, profile: Optional[OrgProfile] = None, identity: Optional[str] = None) -> SessionBootstrapper:
    """Bootstrapper for ``profile`` (default: active profile) using the configured provider."""
    profile = profile or settings.active
    if identity is None:
        identity = settings.username if settings.auth_provider == "soap" else profile.target_org
    return SessionBootstrapper(
        page,
        identity=identity or "",
        provider=build_provider(),
        fallback_instance_url=profile.instance_url,
    )
