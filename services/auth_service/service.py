"""
Credential provider for the store-ops agent.

Holds the signed-in manager's access/refresh tokens, persists them in the
local store so a restart can resume the session, and implements the refresh
half of the API client's 401 policy. A failed refresh clears everything and
notifies the logout listeners (the sync engine stops polling there).
"""
import inspect
from typing import Awaitable, Callable, List, Optional, Union

import structlog
from pydantic import ValidationError

from shared.config.database import AsyncSessionLocal
from shared.observability import storeops_token_refresh_total
from shared.security import is_token_expired
from services.order_service.exceptions import ApiError, StoreOpsError

from .repository import CredentialRepository
from .schemas import LoginRequest, LoginResponse, Manager, RefreshResponse

logger = structlog.get_logger(__name__)

LogoutListener = Callable[[], Union[None, Awaitable[None]]]


class AuthSession:

    def __init__(self, api, session_factory=AsyncSessionLocal):
        self.api = api
        self.session_factory = session_factory
        self.access_token: Optional[str] = None
        self.refresh_token: Optional[str] = None
        self.manager: Optional[Manager] = None
        self._logout_listeners: List[LogoutListener] = []

    @property
    def is_authenticated(self) -> bool:
        return bool(self.access_token) and self.manager is not None

    def add_logout_listener(self, listener: LogoutListener):
        self._logout_listeners.append(listener)

    def get_auth_headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"
        return headers

    async def restore(self) -> bool:
        """Resume a stored session if its access token is still usable."""
        async with self.session_factory() as db:
            stored = await CredentialRepository.get(db)
            if stored is None:
                return False
            if is_token_expired(stored.access_token) and not stored.refresh_token:
                logger.info("stored_session_expired")
                await CredentialRepository.clear(db)
                return False
            try:
                manager = Manager.model_validate(stored.manager)
            except ValidationError:
                logger.warning("stored_manager_unreadable")
                await CredentialRepository.clear(db)
                return False
        self.access_token = stored.access_token
        self.refresh_token = stored.refresh_token
        self.manager = manager
        logger.info("stored_session_restored", manager_id=manager.id, store_id=manager.store_id)
        return True

    async def login(self, username: str, password: str) -> Manager:
        request = LoginRequest(username=username, password=password)
        payload = await self.api.login(request.username, request.password)
        try:
            login = LoginResponse.model_validate(payload)
        except ValidationError as e:
            raise ApiError(502, f"Unexpected login response: {e}") from e
        await self._store(login.token, login.refresh_token, login.manager)
        logger.info("manager_logged_in", manager_id=login.manager.id, store_id=login.manager.store_id)
        return login.manager

    async def refresh_credentials(self) -> bool:
        if not self.refresh_token or self.manager is None:
            storeops_token_refresh_total.labels(outcome="unavailable").inc()
            await self.logout()
            return False
        try:
            payload = await self.api.refresh_token(self.refresh_token)
            refreshed = RefreshResponse.model_validate(payload)
        except (StoreOpsError, ValidationError) as e:
            storeops_token_refresh_total.labels(outcome="failed").inc()
            logger.warning("token_refresh_failed", error=str(e))
            await self.logout()
            return False
        await self._store(refreshed.access_token, refreshed.refresh_token or self.refresh_token, self.manager)
        storeops_token_refresh_total.labels(outcome="success").inc()
        logger.info("token_refreshed")
        return True

    async def logout(self):
        self.access_token = None
        self.refresh_token = None
        self.manager = None
        async with self.session_factory() as db:
            await CredentialRepository.clear(db)
        logger.info("manager_logged_out")
        for listener in list(self._logout_listeners):
            result = listener()
            if inspect.isawaitable(result):
                await result

    async def _store(self, access_token: str, refresh_token: Optional[str], manager: Manager):
        self.access_token = access_token
        self.refresh_token = refresh_token
        self.manager = manager
        async with self.session_factory() as db:
            await CredentialRepository.save(db, access_token, refresh_token, manager.model_dump())
