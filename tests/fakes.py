"""
In-memory collaborators for clock service tests
"""
import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

from app.models.attendance_record import STATUS_ACTIVE
from app.repositories.attendance_record_repository import ActiveSessionConflict, AttendanceStateStore
from app.schemas.attendance import AttendanceRecord
from app.schemas.site import SiteReference


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransaction:
    def __init__(self):
        self.locks: List[asyncio.Lock] = []
        self.staged: Dict[str, AttendanceRecord] = {}


class InMemoryStateStore(AttendanceStateStore):
    """Per-student locks held until commit or rollback; writes become visible on commit"""

    def __init__(self, delay: float = 0.0):
        self.records: Dict[str, AttendanceRecord] = {}
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.delay = delay
        self.fail_with: Optional[Exception] = None
        self.fail_reads_with: Optional[Exception] = None
        self.transactions = 0
        self.commits = 0
        self.rollbacks = 0
        self.find_calls = 0
        self.find_delay = 0.0

    @asynccontextmanager
    async def transaction(self):
        self.transactions += 1
        if self.fail_with is not None:
            raise self.fail_with
        tx = FakeTransaction()
        try:
            yield tx
        except BaseException:
            self.rollbacks += 1
            raise
        else:
            self.records.update(tx.staged)
            self.commits += 1
        finally:
            for lock in reversed(tx.locks):
                lock.release()

    async def _lock(self, tx: FakeTransaction, student_id: str) -> None:
        lock = self._locks[student_id]
        if lock not in tx.locks:
            await lock.acquire()
            tx.locks.append(lock)
        if self.delay:
            await asyncio.sleep(self.delay)

    def _visible(self, tx: FakeTransaction) -> Dict[str, AttendanceRecord]:
        return {**self.records, **tx.staged}

    async def lock_active_session_for_student(self, tx, student_id):
        await self._lock(tx, student_id)
        for record in self._visible(tx).values():
            if record.ar_student_id == student_id and record.ar_status == STATUS_ACTIVE:
                return record
        return None

    async def lock_session_by_id(self, tx, student_id, record_id):
        await self._lock(tx, student_id)
        record = self._visible(tx).get(record_id)
        if record is None or record.ar_student_id != student_id or record.ar_status != STATUS_ACTIVE:
            return None
        return record

    async def insert(self, tx, data):
        record = AttendanceRecord(**data)
        for existing in self._visible(tx).values():
            if existing.ar_student_id == record.ar_student_id and existing.ar_status == STATUS_ACTIVE:
                raise ActiveSessionConflict(record.ar_student_id)
        tx.staged[record.ar_id] = record
        return record

    async def update(self, tx, record_id, patch):
        current = self._visible(tx).get(record_id)
        if current is None:
            raise LookupError(record_id)
        updated = current.model_copy(update=patch)
        tx.staged[record_id] = updated
        return updated

    async def find_active_session(self, student_id):
        self.find_calls += 1
        if self.fail_reads_with is not None:
            raise self.fail_reads_with
        found = None
        for record in self.records.values():
            if record.ar_student_id == student_id and record.ar_status == STATUS_ACTIVE:
                found = record
                break
        if self.find_delay:
            # Snapshot first, then stall: a slow replica read
            await asyncio.sleep(self.find_delay)
        return found

    def active_records(self, student_id: str) -> List[AttendanceRecord]:
        return [
            r for r in self.records.values()
            if r.ar_student_id == student_id and r.ar_status == STATUS_ACTIVE
        ]


class StaticSiteResolver:
    """Stands in for SiteReferenceCache with fixed site and rotation tables"""

    def __init__(self, sites: Dict[str, SiteReference], rotations: Optional[Dict[str, str]] = None):
        self.sites = sites
        self.rotations = rotations or {}
        self.fail_with: Optional[Exception] = None
        self.calls = 0

    async def resolve(self, rotation_id, site_id):
        self.calls += 1
        if self.fail_with is not None:
            raise self.fail_with
        if rotation_id:
            site_id = self.rotations.get(rotation_id)
            if site_id is None:
                return None
        return self.sites.get(site_id)

    async def get_by_site_id(self, site_id):
        if self.fail_with is not None:
            raise self.fail_with
        return self.sites.get(site_id)
