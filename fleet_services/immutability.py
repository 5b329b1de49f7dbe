"""
ORM-level append-only enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE reach the database.
The listeners here intercept them for records that must never change:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
    [before_delete] --> _check_*_delete() ---------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Protected entities:

Entity                  | When immutable                | Why
------------------------|-------------------------------|-------------------------------
MarginReserveMovement   | ALWAYS (from creation)        | The reserve ledger is append-only
InvestmentPosition      | After REDEEMED or CANCELED    | Closed applications are history

updated_at/updated_by_id are audit metadata and may always change.

Usage:
    from fleet_services.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

    # Tests that need to tamper on purpose:
    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from fleet_kernel.exceptions import ImmutabilityViolationError
from fleet_kernel.logging_config import get_logger
from fleet_engines.investment import InvestmentStatus
from fleet_services.orm import InvestmentPositionModel, MarginReserveMovementModel

logger = get_logger("services.immutability")

_AUDIT_FIELDS = frozenset({"updated_at", "updated_by_id"})


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str, **extra) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    return [
        attr.key
        for attr in inspect(target).attrs
        if attr.key not in _AUDIT_FIELDS and attr.history.has_changes()
    ]


def _check_movement_immutability(mapper, connection, target):
    """Reserve movements are never modified, apart from audit metadata."""
    if not isinstance(target, MarginReserveMovementModel):
        return

    for field in _changed_fields(target):
        _blocked(
            "MarginReserveMovement",
            str(target.id),
            "UPDATE",
            f"Cannot modify field '{field}' on a recorded reserve movement",
            field=field,
        )


def _check_movement_delete(mapper, connection, target):
    if not isinstance(target, MarginReserveMovementModel):
        return

    _blocked(
        "MarginReserveMovement",
        str(target.id),
        "DELETE",
        "Reserve movements cannot be deleted",
    )


def _was_terminal(target: InvestmentPositionModel) -> bool:
    """
    True when the position was REDEEMED or CANCELED before this flush.

    The transition into a terminal status is itself allowed; only changes
    made after it has been persisted are blocked.
    """
    status_history = get_history(target, "status")
    if status_history.deleted:
        old_status = status_history.deleted[0]
    elif not status_history.added:
        old_status = target.status
    else:
        return False
    return InvestmentStatus(old_status).is_terminal


def _check_investment_immutability(mapper, connection, target):
    if not isinstance(target, InvestmentPositionModel):
        return

    if not _was_terminal(target):
        return

    for field in _changed_fields(target):
        _blocked(
            "InvestmentPosition",
            str(target.id),
            "UPDATE",
            f"Cannot modify field '{field}' on a closed investment position",
            field=field,
        )


def _check_investment_delete(mapper, connection, target):
    """Only simulations can be discarded; real applications stay on record."""
    if not isinstance(target, InvestmentPositionModel):
        return

    if target.status != InvestmentStatus.SIMULATED.value:
        _blocked(
            "InvestmentPosition",
            str(target.id),
            "DELETE",
            f"Investment positions in status '{target.status}' cannot be deleted",
        )


def register_immutability_listeners():
    """Register all append-only event listeners. Safe to call more than once."""
    for target, event_name, listener_fn in _LISTENERS:
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove the append-only listeners.

    WARNING: Only use this in tests that need to tamper with records on
    purpose.
    """
    for target, event_name, listener_fn in _LISTENERS:
        _safe_remove_listener(target, event_name, listener_fn)


_LISTENERS = (
    (MarginReserveMovementModel, "before_update", _check_movement_immutability),
    (MarginReserveMovementModel, "before_delete", _check_movement_delete),
    (InvestmentPositionModel, "before_update", _check_investment_immutability),
    (InvestmentPositionModel, "before_delete", _check_investment_delete),
)
