from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class OrderStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    READY = "ready"
    ASSIGNED = "assigned"
    COMPLETED = "completed"
    REJECTED = "rejected"


class ItemStatus(str, Enum):
    PENDING = "pending"
    LOCATED = "located"
    SCANNED = "scanned"
    UNAVAILABLE = "unavailable"


class _CamelModel(BaseModel):
    # Serialises with the backend's camelCase names, accepts snake_case in Python
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class RackLocation(_CamelModel):
    location: str = ""
    aisle: str = ""
    description: str = ""
    floor: str = ""


class OrderItem(_CamelModel):
    id: str
    name: str = ""
    category: str = ""
    price: Decimal = Decimal("0")
    quantity: int = Field(default=1, ge=1)
    barcode: str = ""
    image: str = ""
    rack: RackLocation = Field(default_factory=RackLocation)
    weight: str = ""
    mrp: str = ""
    status: ItemStatus = ItemStatus.PENDING
    picked_quantity: Optional[int] = None
    scanned_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _scan_fields_follow_status(self):
        if self.status == ItemStatus.SCANNED:
            if self.picked_quantity is None or self.scanned_at is None:
                raise ValueError("scanned items need both picked_quantity and scanned_at")
            if not 1 <= self.picked_quantity <= self.quantity:
                raise ValueError(
                    f"picked_quantity must be between 1 and {self.quantity}, got {self.picked_quantity}"
                )
        elif self.picked_quantity is not None or self.scanned_at is not None:
            raise ValueError(f"{self.status.value} items cannot carry scan data")
        return self

    @property
    def is_processed(self) -> bool:
        return self.status in (ItemStatus.SCANNED, ItemStatus.UNAVAILABLE)

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


class Order(_CamelModel):
    id: str
    store_id: str = ""
    customer_name: str = ""
    phone_number: str = ""
    delivery_address: str = ""
    special_instructions: str = ""
    total: Decimal = Decimal("0")
    status: OrderStatus = OrderStatus.PENDING
    items: List[OrderItem] = Field(default_factory=list)
    timestamp: datetime
    driver_id: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    estimated_time: Optional[int] = None
    order_type: str = "grocery"
    delivery_type: str = ""
    payment_type: str = ""
    delivery_latitude: str = ""
    delivery_longitude: str = ""

    @property
    def display_total(self) -> str:
        return f"{self.total:.2f}"

    def find_item(self, item_id: str) -> Optional[OrderItem]:
        return next((item for item in self.items if item.id == item_id), None)
