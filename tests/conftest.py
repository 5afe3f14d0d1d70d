import os

os.environ.setdefault("HIREPIPE_DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("HIREPIPE_AUTO_CREATE_TABLES", "false")
os.environ.setdefault("HIREPIPE_ENABLE_SCHEDULER", "false")
os.environ.setdefault("HIREPIPE_REDIS_URL", "")

from dataclasses import dataclass

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hirepipe.models import Base, Candidate, Company, Job, PipelineStage
from hirepipe.services.pipeline import seed_default_stages


@pytest.fixture()
async def async_engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(async_engine):
    return async_sessionmaker(bind=async_engine, expire_on_commit=False, autoflush=False)


@pytest.fixture()
async def db_session(session_factory):
    async with session_factory() as session:
        yield session
        await session.rollback()


@dataclass
class SeededJob:
    company: Company
    job: Job
    candidates: list[Candidate]
    stages: dict[str, PipelineStage]


async def seed_job(session: AsyncSession, *, title: str = "Backend Engineer", candidate_count: int = 3) -> SeededJob:
    company = Company(name="Acme")
    session.add(company)
    await session.flush()
    job = Job(company_id=company.company_id, title=title)
    session.add(job)
    candidates = [
        Candidate(full_name=f"Candidate {index}", email=f"candidate{index}@example.com")
        for index in range(1, candidate_count + 1)
    ]
    session.add_all(candidates)
    await session.flush()
    stages = await seed_default_stages(session, job_id=job.job_id)
    await session.commit()
    return SeededJob(
        company=company,
        job=job,
        candidates=candidates,
        stages={stage.name: stage for stage in stages},
    )


@pytest.fixture()
async def seeded(db_session):
    return await seed_job(db_session)


@pytest.fixture()
def make_job(db_session):
    async def _make(**kwargs) -> SeededJob:
        return await seed_job(db_session, **kwargs)

    return _make


@pytest.fixture()
async def file_session_factory(tmp_path):
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'pipeline.db'}",
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.fixture()
async def file_seeded(file_session_factory):
    async with file_session_factory() as session:
        return await seed_job(session, candidate_count=6)
