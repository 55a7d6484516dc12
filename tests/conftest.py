import os

# Settings are read at import time; point them at throwaway values before the app loads.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from decimal import Decimal
from types import SimpleNamespace
from typing import AsyncGenerator
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from feeledger.api.v1.fee_heads import service as fee_heads_service
from feeledger.api.v1.fee_heads.schemas import FeeHeadCreate
from feeledger.api.v1.fee_structures import service as fee_structures_service
from feeledger.api.v1.fee_structures.schemas import FeeStructureSet
from feeledger.core.enums import Role, TenantStatus
from feeledger.core.models import SchoolClass, Student, Tenant
from feeledger.core.tenant_context import TenantContext
from feeledger.db.session import Base, get_db, get_read_db
from feeledger.main import app

from tests.helpers import ACADEMIC_YEAR, make_ctx

# SQLite has no schemas; render core.* and school.* tables unqualified.
SCHEMA_TRANSLATE_MAP = {"core": None, "school": None}


@pytest.fixture()
async def engine(tmp_path):
    """File-backed SQLite so separate sessions see each other's commits."""
    raw_engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}", future=True)
    test_engine = raw_engine.execution_options(schema_translate_map=SCHEMA_TRANSLATE_MAP)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await raw_engine.dispose()


@pytest.fixture()
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


async def _seed_tenant(db: AsyncSession, code: str, name: str) -> SimpleNamespace:
    tenant = Tenant(
        id=uuid4(),
        organization_code=code,
        organization_name=name,
        payee_vpa=f"{code.lower()}@okbank",
        status=TenantStatus.ACTIVE.value,
    )
    db.add(tenant)
    await db.flush()
    grade5 = SchoolClass(id=uuid4(), tenant_id=tenant.id, name="Grade 5")
    grade6 = SchoolClass(id=uuid4(), tenant_id=tenant.id, name="Grade 6")
    db.add_all([grade5, grade6])
    await db.flush()
    students = [
        Student(id=uuid4(), tenant_id=tenant.id, class_id=grade5.id, full_name=f"Student {i}")
        for i in range(3)
    ]
    # Grade 6 has no fee structures; its student is skipped by invoice generation
    unbilled = Student(id=uuid4(), tenant_id=tenant.id, class_id=grade6.id, full_name="Unbilled Student")
    db.add_all(students + [unbilled])
    await db.commit()
    # Plain id snapshots: a failed ledger call rolls the session back and expires ORM rows
    return SimpleNamespace(
        tenant_id=tenant.id,
        grade5=SimpleNamespace(id=grade5.id),
        grade6=SimpleNamespace(id=grade6.id),
        students=[SimpleNamespace(id=s.id) for s in students],
        unbilled=SimpleNamespace(id=unbilled.id),
    )


@pytest.fixture()
async def school(db_session: AsyncSession) -> SimpleNamespace:
    return await _seed_tenant(db_session, "SCH-A001", "Green Valley School")


@pytest.fixture()
async def other_school(db_session: AsyncSession) -> SimpleNamespace:
    return await _seed_tenant(db_session, "SCH-B002", "Riverside School")


@pytest.fixture()
def ctx(school) -> TenantContext:
    """School admin of the seeded tenant."""
    return make_ctx(school.tenant_id)


@pytest.fixture()
def accountant_ctx(school) -> TenantContext:
    return make_ctx(school.tenant_id, Role.ACCOUNTANT)


@pytest.fixture()
async def catalog(db_session: AsyncSession, school, ctx) -> SimpleNamespace:
    """Tuition 4000 + Transport 1000 for Grade 5, so every Grade 5 invoice totals 5000."""
    tuition = await fee_heads_service.create_fee_head(db_session, ctx, FeeHeadCreate(name="Tuition"))
    transport = await fee_heads_service.create_fee_head(db_session, ctx, FeeHeadCreate(name="Transport"))
    tuition_fs = await fee_structures_service.set_fee_structure(
        db_session,
        ctx,
        FeeStructureSet(
            class_id=school.grade5.id,
            fee_head_id=tuition.id,
            amount=Decimal("4000"),
            academic_year=ACADEMIC_YEAR,
        ),
    )
    transport_fs = await fee_structures_service.set_fee_structure(
        db_session,
        ctx,
        FeeStructureSet(
            class_id=school.grade5.id,
            fee_head_id=transport.id,
            amount=Decimal("1000"),
            academic_year=ACADEMIC_YEAR,
        ),
    )
    return SimpleNamespace(
        tuition=tuition,
        transport=transport,
        tuition_fs=tuition_fs,
        transport_fs=transport_fs,
    )


@pytest.fixture()
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the FastAPI app; every request gets its own session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_read_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
