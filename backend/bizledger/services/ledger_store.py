"""SQL-backed ledger store.

One ``insert`` is one unit of work: the ledger row and its
``LEDGER_RECORD_CREATED`` audit entry are committed together, or rolled back
together. Store failures surface as exceptions so the orchestrator can record
them per item.
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Union

from sqlalchemy.exc import DisconnectionError, InterfaceError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from bizledger.models.ledger import Asset, Expense, Income
from bizledger.schemas.finance import TransactionKind
from bizledger.services.audit_service import create_audit_log

logger = logging.getLogger(__name__)

LedgerRow = Union[Expense, Income, Asset]

MODEL_BY_KIND: dict[TransactionKind, type] = {
    TransactionKind.EXPENSE: Expense,
    TransactionKind.INCOME: Income,
    TransactionKind.ASSET: Asset,
}

_UNAVAILABLE_ERRORS = (OperationalError, InterfaceError, DisconnectionError)


class LedgerStoreError(Exception):
    """Base class for ledger persistence failures."""


class LedgerInsertError(LedgerStoreError):
    """The store rejected one row (constraint violation, bad value)."""


class LedgerUnavailableError(LedgerStoreError):
    """The store could not be reached at all."""


def _audit_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return value


def record_snapshot(kind: TransactionKind, row: LedgerRow) -> dict[str, Any]:
    """JSON-safe dict of the columns of *row*, used for audit entries."""
    data = {col.name: _audit_value(getattr(row, col.key)) for col in row.__mapper__.columns}
    data["id"] = str(row.id)
    data["business_id"] = str(row.business_id)
    data["kind"] = kind.value
    return data


class SqlLedgerStore:
    def __init__(self, db: Session, *, actor_id: str | None = None) -> None:
        self._db = db
        self._actor_id = actor_id

    def insert(self, kind: TransactionKind, values: dict[str, Any], *, business_id: Any) -> LedgerRow:
        model = MODEL_BY_KIND[kind]
        db = self._db
        try:
            row = model(business_id=business_id, **values)
            db.add(row)
            db.flush()
            db.refresh(row)
            create_audit_log(
                db,
                entity_type=kind.value,
                entity_id=str(row.id),
                action="LEDGER_RECORD_CREATED",
                old_value=None,
                new_value=record_snapshot(kind, row),
                actor_type="USER",
                actor_id=self._actor_id,
            )
            db.commit()
            db.refresh(row)
        except _UNAVAILABLE_ERRORS as exc:
            db.rollback()
            raise LedgerUnavailableError(str(exc)) from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise LedgerInsertError(str(exc)) from exc

        return row
