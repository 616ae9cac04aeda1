"""Durable tier: upsert-by-identifier persistence of canonical records."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator, Optional

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from kyc.errors import DurableStoreFailure
from kyc.store import sql as sql_schema
from kyc.store.schema import CanonicalRecord
from kyc.store.sql import session_factory as default_session_factory

LOGGER = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _record_values(record: CanonicalRecord, cached_at: datetime) -> dict[str, object]:
    return {
        "first_name": record.first_name,
        "last_name": record.last_name,
        "address": record.address,
        "phone_number": record.phone_number,
        "email": record.email,
        "tax_country": record.tax_country,
        "income": record.income,
        "cached_at": cached_at,
    }


def _row_to_record(row: sa.Row) -> CanonicalRecord:
    cached_at = row.cached_at
    if cached_at is not None and cached_at.tzinfo is None:
        # SQLite drops tzinfo; values are always written as UTC.
        cached_at = cached_at.replace(tzinfo=timezone.utc)
    return CanonicalRecord(
        identifier=row.identifier,
        first_name=row.first_name or "",
        last_name=row.last_name or "",
        address=row.address or "",
        phone_number=row.phone_number,
        email=row.email,
        tax_country=row.tax_country or "",
        income=row.income,
        cached_at=cached_at,
    )


class KycRecordStore:
    """Persist canonical records keyed by identifier, one row per customer."""

    def __init__(
        self,
        *,
        session_factory: sessionmaker | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._session_factory = session_factory or default_session_factory()
        self._clock = clock

    @contextmanager
    def _session_scope(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def upsert(self, record: CanonicalRecord) -> CanonicalRecord:
        """Insert or overwrite the row for ``record.identifier``.

        Args:
            record: Canonical record to persist. Its ``cached_at`` is ignored.

        Returns:
            The record as stored, stamped with the new ``cached_at``.

        Raises:
            DurableStoreFailure: If the write fails.
        """

        cached_at = self._clock()
        values = _record_values(record, cached_at)
        try:
            try:
                with self._session_scope() as session:
                    self._write(session, record.identifier, values)
            except IntegrityError:
                # A concurrent first write inserted the row; overwrite it.
                LOGGER.info("Concurrent insert detected for identifier=%s; retrying as update", record.identifier)
                with self._session_scope() as session:
                    self._write(session, record.identifier, values)
        except SQLAlchemyError as exc:
            LOGGER.exception("Error persisting KYC record for identifier=%s", record.identifier)
            raise DurableStoreFailure("upsert", record.identifier) from exc

        LOGGER.info("Persisted KYC record for identifier=%s", record.identifier)
        return record.with_cached_at(cached_at)

    def find_by_identifier(self, identifier: str) -> Optional[CanonicalRecord]:
        """Return the stored record for ``identifier``, or ``None``.

        Raises:
            DurableStoreFailure: If the read fails.
        """

        table = sql_schema.kyc_records
        try:
            with self._session_scope() as session:
                row = session.execute(sa.select(table).where(table.c.identifier == identifier)).first()
        except SQLAlchemyError as exc:
            LOGGER.exception("Error reading KYC record for identifier=%s", identifier)
            raise DurableStoreFailure("lookup", identifier) from exc
        if row is None:
            return None
        return _row_to_record(row)

    @staticmethod
    def _write(session: Session, identifier: str, values: dict[str, object]) -> None:
        table = sql_schema.kyc_records
        result = session.execute(sa.update(table).where(table.c.identifier == identifier).values(**values))
        if result.rowcount == 0:
            session.execute(sa.insert(table).values(identifier=identifier, **values))


__all__ = ["KycRecordStore"]
