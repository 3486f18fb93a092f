"""
Actor session manager for multi-user scenarios.

Each actor (the admin, a read-only user, ...) gets its own browser context,
page, session bootstrapper and UI driver, so cookies and authentication never
leak between actors and their operations may run concurrently.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import logging

from playwright.async_api import BrowserContext, Error as PlaywrightError, Page

from crm_e2e.config import OrgProfile, Timeouts, settings
from crm_e2e.driver import ResilientUIDriver
from crm_e2e.models import Credential
from crm_e2e.playwright_client import PlaywrightClient
from crm_e2e.session import CredentialProvider, SessionBootstrapper, build_provider

logger = logging.getLogger(__name__)

ADMIN_ACTOR = "admin"


@dataclass
class ActorSession:
    """Handle to one actor's isolated browser session."""
    actor: str
    identity: str
    context: BrowserContext
    page: Page
    bootstrapper: SessionBootstrapper
    driver: ResilientUIDriver
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        return f"ActorSession(actor={self.actor}, identity={self.identity})"


class ActorSessionManager:
    """
    Creates and tracks one isolated session per actor.

    Usage:
        async with ActorSessionManager(client) as manager:
            admin = await manager.admin_session()
            viewer = await manager.create_session('viewer', 'viewer@example.com')

            await admin.driver.navigate_to_object('Opportunity')
            await viewer.driver.navigate_to_object('Opportunity')
    """

    def __init__(
        self,
        client: PlaywrightClient,
        profile: Optional[OrgProfile] = None,
        provider: Optional[CredentialProvider] = None,
        timeouts: Optional[Timeouts] = None,
    ):
        """
        Args:
            client: Connected PlaywrightClient; each actor gets a context from it
            profile: Org profile the actors work in (default: active profile)
            provider: Credential provider shared by all actors (default: from settings)
            timeouts: Wait budgets for every driver (default: from settings)
        """
        self.client = client
        self.profile = profile or settings.active
        self.provider = provider
        self.timeouts = timeouts or settings.timeouts
        self.sessions: Dict[str, ActorSession] = {}

    async def __aenter__(self) -> 'ActorSessionManager':
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close_all()

    async def create_session(
        self,
        actor: str,
        identity: str,
        establish: bool = True,
        credential: Optional[Credential] = None,
    ) -> ActorSession:
        """
        Open a new context for ``actor`` and, by default, authenticate it.

        Args:
            actor: Session key ('admin', 'viewer', ...)
            identity: Identity handed to the credential provider
            establish: Inject the session right away (default True)
            credential: Pre-acquired credential; skips the provider call
        """
        if actor in self.sessions:
            raise ValueError(f"Session for actor {actor} already exists")

        context = await self.client.new_context()
        page = await context.new_page()

        bootstrapper = SessionBootstrapper(
            page,
            identity=identity,
            provider=self.provider or build_provider(),
            timeouts=self.timeouts,
            fallback_instance_url=self.profile.instance_url,
        )
        handle = ActorSession(
            actor=actor,
            identity=identity,
            context=context,
            page=page,
            bootstrapper=bootstrapper,
            driver=ResilientUIDriver(page, timeouts=self.timeouts),
        )
        self.sessions[actor] = handle
        logger.debug(f"Created session: {handle}")

        if establish:
            if credential is not None:
                with bootstrapper.use_identity(identity, credential):
                    await bootstrapper.establish_session()
            else:
                await bootstrapper.establish_session()
            handle.driver.base_url = (bootstrapper.credential or credential).instance_url
        return handle

    async def admin_session(self) -> ActorSession:
        """Get or create the session of the org's default (admin) identity."""
        if ADMIN_ACTOR not in self.sessions:
            identity = settings.username if settings.auth_provider == 'soap' else self.profile.target_org
            await self.create_session(ADMIN_ACTOR, identity or '')
        return self.sessions[ADMIN_ACTOR]

    def get_session(self, actor: str) -> Optional[ActorSession]:
        return self.sessions.get(actor)

    async def close_session(self, actor: str) -> None:
        """Close and forget an actor's session."""
        handle = self.sessions.pop(actor, None)
        if handle is None:
            return
        try:
            await handle.context.close()
            logger.debug(f"Closed session: {handle}")
        except PlaywrightError as e:
            logger.warning(f"Error closing session {actor}: {e}")

    async def close_all(self) -> None:
        for actor in list(self.sessions.keys()):
            await self.close_session(actor)
