from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Event types delivered by the push relay
NEW_ORDER_EVENT = "grocery_order"
ORDER_REFRESH_EVENTS = frozenset({"order_status_updated", "order_updated"})


class NotificationEvent(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    type: str
    order_id: Optional[Union[str, int]] = None


class NotificationAck(BaseModel):
    accepted: bool
    type: str


class DeviceInfo(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    platform: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class PushTokenRegistration(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    store_manager_id: str
    store_id: str
    push_token: str
    device_info: DeviceInfo
