"""
Explicit per-process session context.

Holds the backend client, settings, current identity and plan cache. Acquired
at start-up with open(), refreshed when the auth provider reports a change,
torn down with close().
"""
import asyncio
import logging
from typing import Optional

from simulado.config import Settings
from simulado.errors import StoreError
from simulado.models import Plan, UserIdentity
from simulado.subscription import SubscriptionStatusCache

logger = logging.getLogger(__name__)


class AppContext:
    def __init__(self, db, settings: Settings):
        self.db = db
        self.settings = settings
        self.user: Optional[UserIdentity] = None
        self.subscription = SubscriptionStatusCache(db)
        self._auth_subscription = None
        self._pending_refresh: Optional[asyncio.Task] = None
        self.is_open = False

    @property
    def user_id(self) -> Optional[str]:
        return self.user.id if self.user else None

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None

    async def open(self) -> "AppContext":
        self.user = await self.db.get_current_user()
        try:
            self._auth_subscription = self.db.on_auth_state_change(self._on_auth_state_change)
        except Exception as e:
            logger.warning("Could not register auth listener: %s", e)
        self.is_open = True
        logger.info("Session opened for %s", self.user_id or "anonymous user")
        return self

    async def refresh(self) -> Optional[UserIdentity]:
        previous = self.user_id
        self.user = await self.db.get_current_user()
        self.subscription.invalidate()
        if previous != self.user_id:
            logger.info("Identity changed: %s -> %s", previous or "anonymous", self.user_id or "anonymous")
        return self.user

    def _on_auth_state_change(self, event, session) -> None:
        logger.debug("Auth state change: %s", event)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._pending_refresh = loop.create_task(self.refresh())

    async def plan(self) -> Plan:
        return await self.subscription.get_plan(self.user)

    async def is_premium(self) -> bool:
        return (await self.plan()).is_premium

    async def close(self, sign_out: bool = False) -> None:
        if self._auth_subscription is not None:
            try:
                self._auth_subscription.unsubscribe()
            except Exception as e:
                logger.warning("Could not unregister auth listener: %s", e)
            self._auth_subscription = None
        if sign_out and self.user is not None:
            try:
                await self.db.sign_out()
            except StoreError as e:
                logger.error("Sign-out failed, clearing local session anyway: %s", e)
        self.user = None
        self.subscription.invalidate()
        self.is_open = False

    async def __aenter__(self) -> "AppContext":
        return await self.open()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()
