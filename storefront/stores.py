"""Order stores: the durable backup file, the optional database, and the
replicating façade that composes them.

Store operations never raise. Each returns a ``StoreResult`` and the
façade decides what a failure means for the caller.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Generic, List, Optional, Protocol, TypeVar

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from storefront.database import Base
from storefront.errors import PersistenceError
from storefront.models import OrderRecord
from storefront.orders import Address, Customer, Order, OrderStatus, to_iso, utcnow

logger = logging.getLogger(__name__)

T = TypeVar("T")

ORIGIN_DATABASE = "database"
ORIGIN_BACKUP = "backup"


@dataclass(frozen=True)
class StoreResult(Generic[T]):
    ok: bool
    value: Optional[T] = None
    error: Optional[PersistenceError] = None
    skipped: bool = False

    @classmethod
    def success(cls, value: Optional[T] = None) -> "StoreResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, message: str) -> "StoreResult[T]":
        return cls(ok=False, error=PersistenceError(message))

    @classmethod
    def skip(cls) -> "StoreResult[T]":
        return cls(ok=False, skipped=True)


class OrderStore(Protocol):
    def append(self, order: Order) -> StoreResult[None]:
        ...

    def update_status(self, payment_intent_id: str, status: OrderStatus) -> StoreResult[int]:
        """Returns the number of records changed."""
        ...

    def read_all(self) -> StoreResult[List[Order]]:
        ...


class DurableFileStore:
    """Orders kept as one JSON array in a local file.

    The whole array is read and rewritten on every write. Writers are
    serialised by a process-wide lock and the file is replaced atomically.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> List[dict]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except UnicodeDecodeError:
            logger.warning("backup file is not valid UTF-8, treating as empty", extra={"path": str(self.path)})
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("backup file is corrupt, treating as empty", extra={"path": str(self.path)})
            return []
        if not isinstance(data, list):
            logger.warning("backup file is not a list, treating as empty", extra={"path": str(self.path)})
            return []
        return data

    def _persist(self, records: List[dict]) -> None:
        directory = self.path.parent
        directory.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(records, fh, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def append(self, order: Order) -> StoreResult[None]:
        with self._lock:
            try:
                records = self._load()
                for record in records:
                    if isinstance(record, dict) and record.get("paymentIntentId") == order.payment_intent_id:
                        if record.get("status") != order.status.value:
                            record["status"] = order.status.value
                            record["updatedAt"] = to_iso(utcnow())
                        break
                else:
                    record = order.to_record()
                    record["savedAt"] = to_iso(utcnow())
                    records.append(record)
                self._persist(records)
            except (OSError, TypeError, ValueError) as exc:
                logger.error("backup append failed", extra={"payment_intent_id": order.payment_intent_id, "error": str(exc)})
                return StoreResult.failure(f"backup append failed: {exc}")
        return StoreResult.success()

    def update_status(self, payment_intent_id: str, status: OrderStatus) -> StoreResult[int]:
        with self._lock:
            try:
                records = self._load()
                changed = 0
                for record in records:
                    if (
                        isinstance(record, dict)
                        and record.get("paymentIntentId") == payment_intent_id
                        and record.get("status") != status.value
                    ):
                        record["status"] = status.value
                        record["updatedAt"] = to_iso(utcnow())
                        changed += 1
                if changed:
                    self._persist(records)
            except (OSError, TypeError, ValueError) as exc:
                logger.error("backup status update failed", extra={"payment_intent_id": payment_intent_id, "error": str(exc)})
                return StoreResult.failure(f"backup status update failed: {exc}")
        return StoreResult.success(changed)

    def read_all(self) -> StoreResult[List[Order]]:
        try:
            with self._lock:
                records = self._load()
        except (OSError, ValueError) as exc:
            logger.error("backup read failed", extra={"error": str(exc)})
            return StoreResult.failure(f"backup read failed: {exc}")

        orders = []
        for record in records:
            try:
                orders.append(Order.from_record(record))
            except (KeyError, TypeError, ValueError, AttributeError, ArithmeticError):
                logger.warning("skipping malformed backup record", extra={"record": repr(record)[:200]})
        return StoreResult.success(orders)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _row_to_order(row: OrderRecord) -> Order:
    return Order(
        payment_intent_id=row.payment_intent_id,
        amount=row.amount,
        product_name=row.product_name or "",
        customer=Customer(email=row.customer_email, full_name=row.customer_name, phone=row.customer_phone),
        address=Address(
            line1=row.address_line1,
            line2=row.address_line2,
            postal_code=row.postal_code,
            city=row.city,
            country_code=row.country_code,
        ),
        delivery=row.delivery or "",
        status=OrderStatus(row.status),
        client_secret=row.client_secret,
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _order_to_row(order: Order) -> OrderRecord:
    return OrderRecord(
        payment_intent_id=order.payment_intent_id,
        amount=order.amount,
        product_name=order.product_name,
        customer_email=order.customer.email,
        customer_name=order.customer.full_name,
        customer_phone=order.customer.phone,
        address_line1=order.address.line1,
        address_line2=order.address.line2,
        postal_code=order.address.postal_code,
        city=order.address.city,
        country_code=order.address.country_code,
        delivery=order.delivery,
        status=order.status.value,
        client_secret=order.client_secret,
        created_at=order.created_at,
        updated_at=order.updated_at,
    )


class RelationalStore:
    """Orders in the ``orders`` table. Disabled when built without a session factory."""

    def __init__(self, session_factory=None):
        self.session_factory = session_factory

    @property
    def available(self) -> bool:
        return self.session_factory is not None

    def ensure_schema(self) -> StoreResult[None]:
        if not self.available:
            return StoreResult.skip()
        try:
            with self.session_factory() as db:
                Base.metadata.create_all(bind=db.get_bind())
        except SQLAlchemyError as exc:
            return StoreResult.failure(f"schema setup failed: {exc}")
        return StoreResult.success()

    def append(self, order: Order) -> StoreResult[None]:
        if not self.available:
            return StoreResult.skip()
        db = self.session_factory()
        try:
            try:
                db.add(_order_to_row(order))
                db.commit()
            except IntegrityError:
                # already recorded: a retry only moves the status
                db.rollback()
                db.execute(
                    update(OrderRecord)
                    .where(
                        OrderRecord.payment_intent_id == order.payment_intent_id,
                        OrderRecord.status != order.status.value,
                    )
                    .values(status=order.status.value, updated_at=utcnow())
                )
                db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            return StoreResult.failure(f"database append failed: {exc}")
        finally:
            db.close()
        return StoreResult.success()

    def update_status(self, payment_intent_id: str, status: OrderStatus) -> StoreResult[int]:
        if not self.available:
            return StoreResult.skip()
        db = self.session_factory()
        try:
            result = db.execute(
                update(OrderRecord)
                .where(
                    OrderRecord.payment_intent_id == payment_intent_id,
                    OrderRecord.status != status.value,
                )
                .values(status=status.value, updated_at=utcnow())
            )
            db.commit()
            changed = result.rowcount
        except SQLAlchemyError as exc:
            db.rollback()
            return StoreResult.failure(f"database status update failed: {exc}")
        finally:
            db.close()
        return StoreResult.success(changed)

    def read_all(self) -> StoreResult[List[Order]]:
        if not self.available:
            return StoreResult.skip()
        db = self.session_factory()
        try:
            rows = db.execute(select(OrderRecord)).scalars().all()
            orders = [_row_to_order(row) for row in rows]
        except (SQLAlchemyError, ValueError) as exc:
            return StoreResult.failure(f"database read failed: {exc}")
        finally:
            db.close()
        return StoreResult.success(orders)


@dataclass(frozen=True)
class SaveReport:
    durable: bool
    replicated: Optional[bool]  # None when no database is configured


@dataclass(frozen=True)
class MergedOrder:
    order: Order
    origin: str


_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


class ReplicatingStore:
    """Mandatory backup file plus best-effort database replica."""

    def __init__(self, backup: OrderStore, database: RelationalStore):
        self.backup = backup
        self.database = database

    @property
    def has_database(self) -> bool:
        return self.database.available

    def save(self, order: Order) -> SaveReport:
        durable = self.backup.append(order)
        if not durable.ok:
            logger.error("order not written to backup", extra={"payment_intent_id": order.payment_intent_id, "error": str(durable.error)})

        replicated = None
        if self.has_database:
            result = self.database.append(order)
            replicated = result.ok
            if not result.ok:
                logger.warning("order not written to database", extra={"payment_intent_id": order.payment_intent_id, "error": str(result.error)})
        return SaveReport(durable=durable.ok, replicated=replicated)

    def update_status(self, payment_intent_id: str, status: OrderStatus) -> int:
        """Apply a status to both stores; returns the records changed across them."""
        changed = 0
        if self.has_database:
            result = self.database.update_status(payment_intent_id, status)
            if result.ok:
                changed += result.value or 0
            else:
                logger.warning("database status update failed", extra={"payment_intent_id": payment_intent_id, "error": str(result.error)})

        result = self.backup.update_status(payment_intent_id, status)
        if result.ok:
            changed += result.value or 0
        else:
            logger.error("backup status update failed", extra={"payment_intent_id": payment_intent_id, "error": str(result.error)})
        return changed

    def read_all(self) -> List[MergedOrder]:
        merged: dict[str, MergedOrder] = {}

        from_db = self.database.read_all()
        if from_db.ok:
            for order in from_db.value or []:
                merged[order.payment_intent_id] = MergedOrder(order, ORIGIN_DATABASE)
        elif not from_db.skipped:
            logger.warning("database read failed, listing backup only", extra={"error": str(from_db.error)})

        from_backup = self.backup.read_all()
        if from_backup.ok:
            for order in from_backup.value or []:
                if order.payment_intent_id not in merged:
                    merged[order.payment_intent_id] = MergedOrder(order, ORIGIN_BACKUP)
        else:
            logger.error("backup read failed", extra={"error": str(from_backup.error)})

        return sorted(
            merged.values(),
            key=lambda m: m.order.created_at or _EPOCH,
            reverse=True,
        )


def build_store(backup_path: Path, session_factory: Any = None) -> ReplicatingStore:
    return ReplicatingStore(DurableFileStore(backup_path), RelationalStore(session_factory))
