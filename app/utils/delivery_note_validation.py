"""Delivery note validation utilities."""
from typing import Iterable, List, Optional

import pydantic

from app.core.exceptions import ValidationError
from app.models.delivery_note import DeliveryNoteItem


def validate_items(items: Optional[List[DeliveryNoteItem]]) -> None:
    """
    Validate delivery note items.

    Rules:
    - at least one item
    - description must be non-empty
    - quantity must be positive
    - unit_price, when present, must be non-negative
    """
    if not items:
        raise ValidationError("Delivery note must have at least one item.")

    for index, item in enumerate(items):
        if not item.description or not item.description.strip():
            raise ValidationError(f"Item {index + 1}: description cannot be empty.")

        if item.quantity <= 0:
            raise ValidationError(
                f"Item '{item.description}' has non-positive quantity: {item.quantity}"
            )

        if item.unit_price is not None and item.unit_price < 0:
            raise ValidationError(
                f"Item '{item.description}' has negative unit price: {item.unit_price}"
            )


def normalize_items(raw_items: Optional[Iterable]) -> List[DeliveryNoteItem]:
    """Turn request items (schemas or dicts) into embedded documents, trimming text."""
    if raw_items is None:
        raise ValidationError("Delivery note must have at least one item.")

    items = []
    for index, raw in enumerate(raw_items):
        data = raw if isinstance(raw, dict) else raw.model_dump()
        person = (data.get("person") or "").strip()
        try:
            items.append(DeliveryNoteItem(
                description=(data.get("description") or "").strip(),
                quantity=data.get("quantity"),
                unit_price=data.get("unit_price"),
                person=person or None,
            ))
        except pydantic.ValidationError as e:
            raise ValidationError(
                f"Item {index + 1} is invalid.", extra={"errors": e.errors(include_url=False, include_context=False)}
            ) from e
    return items
