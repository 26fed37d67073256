"""
Order decoding and validation.

``decode_order`` turns a raw Kafka payload into an ``Order``;
``validate_order`` checks the required-field rules. Both are pure and raise
``ValidationError`` on failure.
"""

from typing import Optional, Union

from pydantic import ValidationError as PydanticValidationError

from src.order_service.errors import (
    EMPTY_ITEMS,
    INVALID_JSON,
    INVALID_ORDER_UID,
    INVALID_TRACK_NUMBER,
    ValidationError,
)
from src.order_service.models import Order


def decode_order(payload: Optional[Union[bytes, str]]) -> Order:
    """
    Decode a JSON order payload.

    Args:
        payload: Message value (UTF-8 JSON); ``None`` for tombstones

    Returns:
        Decoded Order (not yet validated)

    Raises:
        ValidationError: Payload missing, not JSON, or field types invalid
    """
    if payload is None:
        raise ValidationError(INVALID_JSON, ValueError("empty message payload"))

    try:
        return Order.model_validate_json(payload)
    except (PydanticValidationError, UnicodeDecodeError) as e:
        raise ValidationError(INVALID_JSON, e) from e


def validate_order(order: Order) -> None:
    """
    Check the required-field rules, in order, stopping at the first failure.

    Raises:
        ValidationError: Empty order_uid, empty track_number or no items
    """
    if not order.order_uid:
        raise ValidationError(INVALID_ORDER_UID)
    if not order.track_number:
        raise ValidationError(INVALID_TRACK_NUMBER)
    if not order.items:
        raise ValidationError(EMPTY_ITEMS)
