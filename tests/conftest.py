from datetime import datetime, timedelta, timezone

import jwt
import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from atams.db import Base

from app.core.config import Settings
from app.db.session import build_engine, build_session_factory, create_schema
from app.models.attendance_record import STATUS_ACTIVE, AttendanceRecord
from app.models.rotation import Rotation
from app.models.site import Site

TEST_JWT_SECRET = "test-secret"

# Manhattan reference point used across the suite
NYC_LAT = 40.7128
NYC_LON = -74.0060


def site_rows():
    return [
        Site(
            si_id="site-nyc",
            si_name="NYC General Hospital",
            si_geo_fence={"type": "circle", "center": [NYC_LAT, NYC_LON], "radius_m": 100},
        ),
        Site(
            si_id="site-strict",
            si_name="Strict Clinic",
            si_geo_fence={"type": "circle", "center": [NYC_LAT, NYC_LON], "radius_m": 100},
            si_strict_geofence=True,
        ),
        Site(
            si_id="site-default-radius",
            si_name="Default Radius Clinic",
            si_geo_fence={"type": "circle", "center": [NYC_LAT, NYC_LON]},
        ),
        Site(si_id="site-unmapped", si_name="Unmapped Clinic", si_geo_fence=None),
        Site(si_id="site-broken", si_name="Broken Fence", si_geo_fence={"type": "circle", "center": [1.0]}),
        Rotation(ro_id="rot-er", ro_name="Emergency Medicine", ro_site_id="site-nyc"),
        Rotation(ro_id="rot-strict", ro_name="Surgery", ro_site_id="site-strict"),
    ]


def make_token(sub: str, role: str = "student", expires_in: int = 3600) -> str:
    payload = {
        "sub": sub,
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(seconds=expires_in),
    }
    return jwt.encode(payload, TEST_JWT_SECRET, algorithm="HS256")


def auth_headers(sub: str, role: str = "student") -> dict:
    return {"Authorization": f"Bearer {make_token(sub, role)}"}


async def count_active_rows(session_factory, student_id: str) -> int:
    async with session_factory() as db:
        result = await db.execute(
            select(func.count())
            .select_from(AttendanceRecord)
            .where(AttendanceRecord.ar_student_id == student_id, AttendanceRecord.ar_status == STATUS_ACTIVE)
        )
        return result.scalar_one()


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "attendance_test.db"


@pytest.fixture
def settings(db_path):
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{db_path}",
        AUTH_JWT_SECRET=TEST_JWT_SECRET,
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
async def engine(settings):
    engine = build_engine(settings)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
async def seeded(session_factory):
    async with session_factory() as db:
        async with db.begin():
            db.add_all(site_rows())
    return session_factory


@pytest.fixture
def seeded_sync(db_path):
    """Create and seed the schema before the app starts, for HTTP tests"""
    engine = create_engine(f"sqlite:///{db_path}")
    Base.metadata.create_all(engine)
    with Session(engine) as db:
        db.add_all(site_rows())
        db.commit()
    engine.dispose()
    return db_path
