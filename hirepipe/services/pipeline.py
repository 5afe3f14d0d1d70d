"""
Ordered stage list per job.

Positions for one job always form 0..n-1. Every mutation first locks the parent
job row, then recomputes shifts from the persisted positions, so two writers on
the same job are serialized by the store and never see each other's halfway state.
Callers own the transaction: the service flushes, the caller commits.
"""

from __future__ import annotations

import logging
from typing import Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.core.errors import ConflictError, NotFoundError, ValidationError
from hirepipe.core.stage_rules import DEFAULT_STAGES, StageTemplate, clean_stage_name, requires_comment_for
from hirepipe.models.application import JobApplication
from hirepipe.models.job import Job
from hirepipe.models.stage import PipelineStage
from hirepipe.models.stage_history import StageHistory

logger = logging.getLogger(__name__)


async def _lock_job(session: AsyncSession, job_id: int) -> Job:
    job = (
        await session.execute(select(Job).where(Job.job_id == job_id).with_for_update())
    ).scalars().first()
    if not job:
        raise NotFoundError("Job")
    return job


async def _stage_count(session: AsyncSession, job_id: int) -> int:
    return (
        await session.execute(
            select(func.count()).select_from(PipelineStage).where(PipelineStage.job_id == job_id)
        )
    ).scalar_one()


async def _ordered_stages(session: AsyncSession, job_id: int) -> list[PipelineStage]:
    rows = (
        await session.execute(
            select(PipelineStage)
            .where(PipelineStage.job_id == job_id)
            .order_by(PipelineStage.position.asc(), PipelineStage.stage_id.asc())
            .execution_options(populate_existing=True)
        )
    ).scalars()
    return list(rows)


async def _fresh_stage(session: AsyncSession, stage_id: int) -> PipelineStage:
    stage = (
        await session.execute(
            select(PipelineStage)
            .where(PipelineStage.stage_id == stage_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalars().first()
    if not stage:
        raise NotFoundError("Pipeline stage")
    return stage


async def get_stage(session: AsyncSession, stage_id: int) -> PipelineStage:
    stage = await session.get(PipelineStage, stage_id)
    if not stage:
        raise NotFoundError("Pipeline stage")
    return stage


async def get_stages(session: AsyncSession, job_id: int) -> list[PipelineStage]:
    job = await session.get(Job, job_id)
    if not job:
        raise NotFoundError("Job")
    return await _ordered_stages(session, job_id)


async def insert_stage(
    session: AsyncSession,
    *,
    job_id: int,
    name: str | None,
    position: int,
    parent_id: int | None = None,
    requires_comment: bool | None = None,
) -> PipelineStage:
    cleaned = clean_stage_name(name)
    if cleaned is None:
        raise ValidationError.for_field("name", "Stage name is required")
    if position < 0:
        raise ValidationError.for_field("position", "Position must be non-negative")

    await _lock_job(session, job_id)
    count = await _stage_count(session, job_id)
    if position > count:
        raise ValidationError.for_field("position", f"Position must be between 0 and {count}")

    if parent_id is not None:
        parent = await session.get(PipelineStage, parent_id)
        if not parent or parent.job_id != job_id:
            raise ValidationError.for_field("parent_id", "Parent stage must belong to the same job")
        if parent.parent_id is not None:
            raise ValidationError.for_field("parent_id", "Sub-stages cannot be nested under another sub-stage")

    await session.execute(
        update(PipelineStage)
        .where(PipelineStage.job_id == job_id, PipelineStage.position >= position)
        .values(position=PipelineStage.position + 1)
    )

    stage = PipelineStage(
        job_id=job_id,
        name=cleaned,
        position=position,
        is_default=False,
        is_mandatory=False,
        requires_comment=requires_comment_for(cleaned, requires_comment),
        parent_id=parent_id,
    )
    session.add(stage)
    await session.flush()
    logger.info(
        "stage_inserted",
        extra={"job_id": job_id, "stage_id": stage.stage_id, "position": position},
    )
    return stage


async def reorder_stage(session: AsyncSession, *, stage_id: int, new_position: int) -> list[PipelineStage]:
    stage = await get_stage(session, stage_id)
    if new_position < 0:
        raise ValidationError.for_field("new_position", "Position must be non-negative")

    job_id = stage.job_id
    await _lock_job(session, job_id)
    # Positions may have shifted while we waited for the lock.
    stage = await _fresh_stage(session, stage_id)
    count = await _stage_count(session, job_id)
    if new_position >= count:
        raise ValidationError.for_field("new_position", f"Position must be between 0 and {count - 1}")

    old_position = stage.position
    if old_position == new_position:
        return await _ordered_stages(session, job_id)

    if new_position > old_position:
        await session.execute(
            update(PipelineStage)
            .where(
                PipelineStage.job_id == job_id,
                PipelineStage.position > old_position,
                PipelineStage.position <= new_position,
            )
            .values(position=PipelineStage.position - 1)
        )
    else:
        await session.execute(
            update(PipelineStage)
            .where(
                PipelineStage.job_id == job_id,
                PipelineStage.position >= new_position,
                PipelineStage.position < old_position,
            )
            .values(position=PipelineStage.position + 1)
        )
    await session.execute(
        update(PipelineStage).where(PipelineStage.stage_id == stage_id).values(position=new_position)
    )
    await session.flush()
    logger.info(
        "stage_reordered",
        extra={"job_id": job_id, "stage_id": stage_id, "from_position": old_position, "to_position": new_position},
    )
    return await _ordered_stages(session, job_id)


async def delete_stage(session: AsyncSession, *, stage_id: int) -> None:
    stage = await get_stage(session, stage_id)
    if stage.is_default:
        raise ValidationError.for_field("stage", "Cannot delete default pipeline stages")

    job_id = stage.job_id
    await _lock_job(session, job_id)
    stage = await _fresh_stage(session, stage_id)

    occupants = (
        await session.execute(
            select(func.count()).select_from(JobApplication).where(JobApplication.current_stage_id == stage_id)
        )
    ).scalar_one()
    if occupants:
        raise ConflictError(
            "Stage still holds applications; move them before deleting it",
            {"stage_id": stage_id, "application_count": occupants},
        )

    children = (
        await session.execute(
            select(func.count()).select_from(PipelineStage).where(PipelineStage.parent_id == stage_id)
        )
    ).scalar_one()
    if children:
        raise ConflictError(
            "Stage has sub-stages; delete them first",
            {"stage_id": stage_id, "sub_stage_count": children},
        )

    position = stage.position
    # History keeps the denormalized name; drop the dangling reference.
    await session.execute(
        update(StageHistory).where(StageHistory.stage_id == stage_id).values(stage_id=None)
    )
    await session.delete(stage)
    await session.flush()
    await session.execute(
        update(PipelineStage)
        .where(PipelineStage.job_id == job_id, PipelineStage.position > position)
        .values(position=PipelineStage.position - 1)
    )
    await session.flush()
    logger.info("stage_deleted", extra={"job_id": job_id, "stage_id": stage_id, "position": position})


async def _seed_stages(
    session: AsyncSession,
    *,
    job_id: int,
    layout: Sequence[StageTemplate],
    is_default: bool,
) -> list[PipelineStage]:
    await _lock_job(session, job_id)
    if await _stage_count(session, job_id):
        raise ConflictError("Job already has pipeline stages", {"job_id": job_id})

    # Sub-stages take the positions right after their parent.
    position = 0
    for template in layout:
        parent = PipelineStage(
            job_id=job_id,
            name=template.name,
            position=position,
            is_default=is_default,
            is_mandatory=template.is_mandatory,
            requires_comment=requires_comment_for(template.name),
        )
        session.add(parent)
        position += 1
        if not template.sub_stages:
            continue
        await session.flush()
        for sub_name in template.sub_stages:
            session.add(
                PipelineStage(
                    job_id=job_id,
                    name=sub_name,
                    position=position,
                    is_default=is_default,
                    is_mandatory=False,
                    requires_comment=requires_comment_for(sub_name),
                    parent_id=parent.stage_id,
                )
            )
            position += 1
    await session.flush()
    return await _ordered_stages(session, job_id)


async def seed_default_stages(session: AsyncSession, *, job_id: int) -> list[PipelineStage]:
    return await _seed_stages(session, job_id=job_id, layout=DEFAULT_STAGES, is_default=True)


async def seed_stages_from_layout(
    session: AsyncSession,
    *,
    job_id: int,
    layout: Sequence[StageTemplate],
) -> list[PipelineStage]:
    if not layout:
        raise ValidationError.for_field("stages", "At least one stage is required")
    stages = await _seed_stages(session, job_id=job_id, layout=layout, is_default=False)
    logger.info("stages_seeded_from_layout", extra={"job_id": job_id, "stage_count": len(stages)})
    return stages
