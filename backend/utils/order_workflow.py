# utils/order_workflow.py
import logging
from typing import Dict, FrozenSet

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from models.order import Order, OrderStatus as S
from schemas.order import OrderUpdate

logger = logging.getLogger(__name__)

# Unversioned edits reapply on top of a concurrent save this many times
MAX_UNVERSIONED_ATTEMPTS = 3

# Admin-driven only; nothing moves an order along on a timer
ALLOWED_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    S.PENDING.value: frozenset({S.CONFIRMED, S.PROCESSING, S.SHIPPED, S.DELIVERED, S.CANCELLED}),
    S.CONFIRMED.value: frozenset({S.PROCESSING, S.SHIPPED, S.DELIVERED, S.CANCELLED, S.REFUNDED}),
    S.PROCESSING.value: frozenset({S.SHIPPED, S.DELIVERED, S.CANCELLED, S.REFUNDED}),
    S.SHIPPED.value: frozenset({S.DELIVERED, S.REFUNDED}),
    S.DELIVERED.value: frozenset({S.REFUNDED}),
    S.CANCELLED.value: frozenset(),
    S.REFUNDED.value: frozenset(),
}


class InvalidTransition(ValueError):
    pass


class VersionConflict(Exception):
    def __init__(self, expected: int, actual: int):
        super().__init__(f"Order was modified (version {actual}, expected {expected})")
        self.expected = expected
        self.actual = actual


def can_transition(current: str, new: str) -> bool:
    if current == new:
        return True
    return new in {s.value for s in ALLOWED_TRANSITIONS.get(current, frozenset())}


def _apply(order: Order, fields: Dict[str, object]) -> Dict[str, tuple]:
    new_status = fields.get("status")
    if new_status is not None and not can_transition(order.status, new_status):
        raise InvalidTransition(f"Cannot change status from {order.status} to {new_status}")

    changes = {}
    for name, value in fields.items():
        if name == "status" and value is None:
            continue
        old = getattr(order, name)
        if old != value:
            setattr(order, name, value)
            changes[name] = (old, value)
    return changes


def update_order(db: Session, order: Order, payload: OrderUpdate) -> Dict[str, tuple]:
    """Apply a partial admin edit and return {field: (old, new)} for what changed.

    With payload.version set the edit only goes through if nobody saved
    the order since that version was read. The UPDATE itself is guarded by
    the mapper's version column, so two requests that both read the same
    version cannot both win. Without a version the last write wins.
    """
    fields = payload.model_dump(exclude_unset=True, exclude={"version"})

    for attempt in range(1, MAX_UNVERSIONED_ATTEMPTS + 1):
        if payload.version is not None and payload.version != order.version:
            raise VersionConflict(payload.version, order.version)

        changes = _apply(order, fields)
        if not changes:
            return changes

        read_version = order.version
        try:
            db.commit()
        except StaleDataError:
            db.rollback()
            db.refresh(order)
            if payload.version is not None:
                raise VersionConflict(payload.version, order.version)
            if attempt == MAX_UNVERSIONED_ATTEMPTS:
                raise VersionConflict(read_version, order.version)
            logger.info("Order %s saved concurrently, reapplying edit", order.order_number)
            continue

        db.refresh(order)
        logger.info("Order %s updated: %s", order.order_number, sorted(changes))
        return changes
