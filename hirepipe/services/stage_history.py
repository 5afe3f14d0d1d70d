from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.core.datetime_utils import hours_between, utcnow_naive
from hirepipe.core.errors import NotFoundError
from hirepipe.models.application import JobApplication
from hirepipe.models.stage_history import StageHistory


def calculate_duration_hours(entered_at: datetime, exited_at: datetime) -> float:
    # Clock skew between writers must not produce a negative residence.
    return max(hours_between(entered_at, exited_at), 0.0)


async def open_entries(session: AsyncSession, application_id: int) -> list[StageHistory]:
    rows = (
        await session.execute(
            select(StageHistory)
            .where(StageHistory.application_id == application_id, StageHistory.exited_at.is_(None))
            .order_by(StageHistory.entered_at.desc(), StageHistory.history_id.desc())
        )
    ).scalars()
    return list(rows)


async def get_current_stage_entry(session: AsyncSession, application_id: int) -> StageHistory | None:
    entries = await open_entries(session, application_id)
    return entries[0] if entries else None


async def close_open_entries(
    session: AsyncSession,
    *,
    application_id: int,
    exited_at: datetime | None = None,
) -> list[StageHistory]:
    """Close every open residence for the application. Normally there is exactly one."""
    exited_at = exited_at or utcnow_naive()
    closed = await open_entries(session, application_id)
    for entry in closed:
        entry.exited_at = exited_at
        entry.duration_hours = calculate_duration_hours(entry.entered_at, exited_at)
    return closed


def create_stage_entry(
    session: AsyncSession,
    *,
    application_id: int,
    stage_id: int,
    stage_name: str,
    comment: str | None = None,
    moved_by: str | None = None,
    entered_at: datetime | None = None,
) -> StageHistory:
    entry = StageHistory(
        application_id=application_id,
        stage_id=stage_id,
        stage_name=stage_name,
        entered_at=entered_at or utcnow_naive(),
        comment=comment,
        moved_by=moved_by,
    )
    session.add(entry)
    return entry


async def get_stage_history(session: AsyncSession, application_id: int) -> list[StageHistory]:
    application = await session.get(JobApplication, application_id)
    if not application:
        raise NotFoundError("Job application")

    rows = (
        await session.execute(
            select(StageHistory)
            .where(StageHistory.application_id == application_id)
            .order_by(StageHistory.entered_at.asc(), StageHistory.history_id.asc())
        )
    ).scalars()
    return list(rows)


async def get_stage_history_by_candidate(session: AsyncSession, candidate_id: int) -> list[StageHistory]:
    """History across every job the candidate applied to, newest first."""
    rows = (
        await session.execute(
            select(StageHistory)
            .join(JobApplication, JobApplication.application_id == StageHistory.application_id)
            .where(JobApplication.candidate_id == candidate_id)
            .order_by(StageHistory.entered_at.desc(), StageHistory.history_id.desc())
        )
    ).scalars()
    return list(rows)
