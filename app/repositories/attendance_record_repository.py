"""
Attendance Record Repository - the only component that locks or mutates attendance rows

Every mutating call takes the transaction handle returned by ``transaction()``,
so the locking contract is visible in the signatures: a caller must hold the
lock from ``lock_active_session_for_student`` or ``lock_session_by_id`` before
it decides to ``insert`` or ``update``.
"""
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from typing import Any, AsyncContextManager, AsyncIterator, Dict, Optional

from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.models.attendance_record import STATUS_ACTIVE, AttendanceRecord as AttendanceRecordRow
from app.schemas.attendance import AttendanceRecord


class ActiveSessionConflict(Exception):
    """Raised when an insert would create a second ACTIVE record for a student"""


class AttendanceStateStore(ABC):
    @abstractmethod
    def transaction(self) -> AsyncContextManager[Any]:
        """Open a transaction; commits on normal exit, rolls back (releasing locks) otherwise"""

    @abstractmethod
    async def lock_active_session_for_student(self, tx: Any, student_id: str) -> Optional[AttendanceRecord]:
        """Lock and return the student's ACTIVE record, serializing concurrent callers for that student"""

    @abstractmethod
    async def lock_session_by_id(self, tx: Any, student_id: str, record_id: str) -> Optional[AttendanceRecord]:
        """Lock and return an ACTIVE record by id, only if it belongs to the student"""

    @abstractmethod
    async def insert(self, tx: Any, data: Dict[str, Any]) -> AttendanceRecord:
        """Insert a new record; raises ActiveSessionConflict on a duplicate ACTIVE record"""

    @abstractmethod
    async def update(self, tx: Any, record_id: str, patch: Dict[str, Any]) -> AttendanceRecord:
        """Apply a patch to a record previously locked in the same transaction"""

    @abstractmethod
    async def find_active_session(self, student_id: str) -> Optional[AttendanceRecord]:
        """Unlocked snapshot of the student's ACTIVE record"""


class AttendanceRecordRepository(AttendanceStateStore):
    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[AsyncSession]:
        async with self.session_factory() as session:
            async with session.begin():
                yield session

    async def _lock_student(self, tx: AsyncSession, student_id: str) -> None:
        # FOR UPDATE locks nothing while the student has no ACTIVE row, so
        # concurrent first clock-ins are serialized on a per-student advisory lock.
        if tx.bind.dialect.name == "postgresql":
            await tx.execute(
                text("SELECT pg_advisory_xact_lock(hashtext(:student_id))"),
                {"student_id": student_id},
            )

    async def lock_active_session_for_student(self, tx: AsyncSession, student_id: str) -> Optional[AttendanceRecord]:
        await self._lock_student(tx, student_id)
        result = await tx.execute(
            select(AttendanceRecordRow)
            .where(
                AttendanceRecordRow.ar_student_id == student_id,
                AttendanceRecordRow.ar_status == STATUS_ACTIVE,
            )
            .with_for_update()
        )
        row = result.scalars().first()
        return AttendanceRecord.model_validate(row) if row else None

    async def lock_session_by_id(self, tx: AsyncSession, student_id: str, record_id: str) -> Optional[AttendanceRecord]:
        await self._lock_student(tx, student_id)
        result = await tx.execute(
            select(AttendanceRecordRow)
            .where(
                AttendanceRecordRow.ar_id == record_id,
                AttendanceRecordRow.ar_student_id == student_id,
                AttendanceRecordRow.ar_status == STATUS_ACTIVE,
            )
            .with_for_update()
        )
        row = result.scalars().first()
        return AttendanceRecord.model_validate(row) if row else None

    async def insert(self, tx: AsyncSession, data: Dict[str, Any]) -> AttendanceRecord:
        row = AttendanceRecordRow(**data)
        tx.add(row)
        try:
            await tx.flush()
        except IntegrityError as e:
            # The transaction is unusable from here; the caller's context rolls it back
            if "unique" in str(e.orig).lower():
                raise ActiveSessionConflict(data.get("ar_student_id")) from e
            raise
        await tx.refresh(row)
        return AttendanceRecord.model_validate(row)

    async def update(self, tx: AsyncSession, record_id: str, patch: Dict[str, Any]) -> AttendanceRecord:
        row = await tx.get(AttendanceRecordRow, record_id)
        if row is None:
            raise LookupError(f"Attendance record {record_id} not found")
        for key, value in patch.items():
            setattr(row, key, value)
        await tx.flush()
        await tx.refresh(row)
        return AttendanceRecord.model_validate(row)

    async def find_active_session(self, student_id: str) -> Optional[AttendanceRecord]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(AttendanceRecordRow)
                .where(
                    AttendanceRecordRow.ar_student_id == student_id,
                    AttendanceRecordRow.ar_status == STATUS_ACTIVE,
                )
                .order_by(AttendanceRecordRow.ar_clock_in_at.desc())
            )
            row = result.scalars().first()
            return AttendanceRecord.model_validate(row) if row else None

