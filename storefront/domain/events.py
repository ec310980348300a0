# storefront/domain/events.py
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone


@dataclass(frozen=True)
class OrderStatusChanged:
    order_id: str
    owner: str
    old_status: str
    new_status: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        data = asdict(self)
        data["timestamp"] = self.timestamp.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "OrderStatusChanged":
        return cls(
            order_id=data["order_id"],
            owner=data["owner"],
            old_status=data["old_status"],
            new_status=data["new_status"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )
