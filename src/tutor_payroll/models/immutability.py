"""ORM-level immutability for append-only and locked records.

History entries, audit rows, invoices and invoice lines are written once and
never changed. A LOCKED pay period cannot be modified at all, so no code path
can revert it to OPEN. Violations raise before any SQL reaches the database.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import event, inspect

from tutor_payroll.models.audit import AuditLog
from tutor_payroll.models.payroll import Invoice, InvoiceLine, PayPeriod
from tutor_payroll.models.session import SessionHistory

logger = logging.getLogger(__name__)


class ImmutableRecordError(Exception):
    """Raised when an immutable record is updated or deleted."""

    def __init__(self, entity_type: str, entity_id: Any, operation: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.operation = operation
        super().__init__(f"Cannot {operation} immutable {entity_type} {entity_id}")


APPEND_ONLY_MODELS = (SessionHistory, AuditLog, Invoice, InvoiceLine)


def _reject_mutation(operation: str):
    def listener(mapper: Any, connection: Any, target: Any) -> None:
        logger.error("Blocked %s of %s %s", operation, mapper.class_.__name__, target.id)
        raise ImmutableRecordError(mapper.class_.__tablename__, target.id, operation)

    return listener


for _model in APPEND_ONLY_MODELS:
    event.listen(_model, "before_update", _reject_mutation("update"))
    event.listen(_model, "before_delete", _reject_mutation("delete"))


def _previous_status(target: PayPeriod) -> str | None:
    history = inspect(target).attrs.status.history
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return None


@event.listens_for(PayPeriod, "before_update")
def _guard_locked_pay_period(mapper: Any, connection: Any, target: PayPeriod) -> None:
    if _previous_status(target) == "LOCKED":
        raise ImmutableRecordError("pay_period", target.id, "update")


event.listen(PayPeriod, "before_delete", _reject_mutation("delete"))
