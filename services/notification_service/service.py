from typing import Any, Optional

import structlog

from shared.config.settings import DEVICE_PLATFORM
from services.order_service.exceptions import StoreOpsError

from .schemas import DeviceInfo, PushTokenRegistration

logger = structlog.get_logger(__name__)


class PushTokenService:
    @staticmethod
    async def register(api, manager, push_token: str, platform: str = DEVICE_PLATFORM) -> Optional[Any]:
        """Tell the backend where to deliver this manager's order pushes.

        Registration is best effort: failures are logged and return None.
        """
        if manager is None or not push_token:
            logger.warning("push_token_registration_skipped", has_manager=manager is not None)
            return None
        registration = PushTokenRegistration(
            store_manager_id=manager.id,
            store_id=manager.store_id,
            push_token=push_token,
            device_info=DeviceInfo(platform=platform),
        )
        try:
            result = await api.register_push_token(
                manager.id, registration.model_dump(mode="json", by_alias=True)
            )
        except StoreOpsError as e:
            logger.warning("push_token_registration_failed", manager_id=manager.id, error=str(e))
            return None
        logger.info("push_token_registered", manager_id=manager.id)
        return result
