"""
Order Models

Two representations of the same order:

- ``Order`` (Pydantic): the immutable domain value decoded from Kafka,
  cached in memory and returned by the HTTP API. JSON field names follow the
  upstream wire format (snake_case).
- ``OrderRecord`` (SQLAlchemy ORM): the row persisted in the ``orders`` table.
  Nested delivery, payment and items are stored as JSONB columns.

Every domain field has a zero-value default so a message that omits a field
still decodes; the validator, not the decoder, rejects empty required fields.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import TIMESTAMP, Index, Integer, String, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# ==============================================================================
# DOMAIN MODEL (Pydantic)
# ==============================================================================

_FROZEN = ConfigDict(frozen=True, extra="ignore")


class Delivery(BaseModel):
    """Recipient and shipping address."""

    model_config = _FROZEN

    name: str = ""
    phone: str = ""
    zip: str = ""
    city: str = ""
    address: str = ""
    region: str = ""
    email: str = ""


class Payment(BaseModel):
    """Payment transaction attached to an order. Amounts are minor units."""

    model_config = _FROZEN

    transaction: str = ""
    request_id: str = ""
    currency: str = ""
    provider: str = ""
    amount: int = 0
    payment_dt: int = 0
    bank: str = ""
    delivery_cost: int = 0
    goods_total: int = 0
    custom_fee: int = 0


class Item(BaseModel):
    """Single line item."""

    model_config = _FROZEN

    chrt_id: int = 0
    track_number: str = ""
    price: int = 0
    rid: str = ""
    name: str = ""
    sale: int = 0
    size: str = ""
    total_price: int = 0
    nm_id: int = 0
    brand: str = ""
    status: int = 0


class Order(BaseModel):
    """
    Order record keyed by ``order_uid``.

    Instances are frozen: re-ingesting an order replaces the cached value,
    it never mutates the old one.
    """

    model_config = _FROZEN

    order_uid: str = ""
    track_number: str = ""
    entry: str = ""
    delivery: Delivery = Field(default_factory=Delivery)
    payment: Payment = Field(default_factory=Payment)
    items: List[Item] = Field(default_factory=list)
    locale: str = ""
    internal_signature: str = ""
    customer_id: str = ""
    delivery_service: str = ""
    shardkey: str = ""
    sm_id: int = 0
    date_created: Optional[datetime] = None
    oof_shard: str = ""


# ==============================================================================
# PERSISTENCE MODEL (SQLAlchemy)
# ==============================================================================


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class OrderRecord(Base):
    """
    Row in the ``orders`` table.

    ``order_uid`` is the primary key; ``updated_at`` is refreshed by the
    database on every upsert so re-ingestion is visible in the table.
    """

    __tablename__ = "orders"

    order_uid: Mapped[str] = mapped_column(String(255), primary_key=True)
    track_number: Mapped[str] = mapped_column(String(255), nullable=False)
    entry: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    locale: Mapped[str] = mapped_column(String(16), nullable=False, default="")
    internal_signature: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    customer_id: Mapped[str] = mapped_column(String(255), nullable=False, default="", index=True)
    delivery_service: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    shardkey: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    sm_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    date_created: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True))
    oof_shard: Mapped[str] = mapped_column(String(32), nullable=False, default="")

    # Nested structures, stored whole: an order is always overwritten wholesale
    delivery: Mapped[Dict[str, Any]] = mapped_column(JSONB, nullable=False)
    payment: Mapped[Dict[str, Any]] = mapped_column(JSONB, nullable=False)
    items: Mapped[List[Dict[str, Any]]] = mapped_column(JSONB, nullable=False)

    updated_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True),
        server_default=text("CURRENT_TIMESTAMP"),
    )

    __table_args__ = (
        Index("idx_orders_track_number", "track_number"),
        {"comment": "Orders consumed from the Kafka orders topic"},
    )

    @staticmethod
    def values_from_order(order: Order) -> Dict[str, Any]:
        """Column values for ``order``, suitable for an INSERT statement."""
        data = order.model_dump(mode="json", exclude={"date_created"})
        data["date_created"] = order.date_created
        return data

    def to_order(self) -> Order:
        """Rebuild the domain value from this row."""
        return Order.model_validate(
            {
                "order_uid": self.order_uid,
                "track_number": self.track_number,
                "entry": self.entry,
                "delivery": self.delivery,
                "payment": self.payment,
                "items": self.items,
                "locale": self.locale,
                "internal_signature": self.internal_signature,
                "customer_id": self.customer_id,
                "delivery_service": self.delivery_service,
                "shardkey": self.shardkey,
                "sm_id": self.sm_id,
                "date_created": self.date_created,
                "oof_shard": self.oof_shard,
            }
        )

    def __repr__(self) -> str:
        return (
            f"<OrderRecord(order_uid={self.order_uid}, "
            f"track_number={self.track_number}, "
            f"items={len(self.items or [])})>"
        )
