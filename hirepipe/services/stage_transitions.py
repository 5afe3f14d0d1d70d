from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import Select, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.core.datetime_utils import utcnow_naive
from hirepipe.core.errors import ConflictError, NotFoundError, ValidationError
from hirepipe.core.stage_rules import has_comment
from hirepipe.models.activity import CandidateActivity
from hirepipe.models.application import JobApplication
from hirepipe.models.candidate import Candidate
from hirepipe.models.job import Job
from hirepipe.models.stage import PipelineStage
from hirepipe.services.activity import ACTIVITY_ADDED_TO_JOB, ACTIVITY_STAGE_CHANGE, log_activity
from hirepipe.services.stage_history import close_open_entries, create_stage_entry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StageTransitionResult:
    application: JobApplication
    current_stage: PipelineStage
    from_stage_name: str | None
    changed: bool
    activity: CandidateActivity | None = None


def _clean_comment(comment: str | None) -> str | None:
    if not has_comment(comment):
        return None
    return comment.strip()


def _transition_description(from_name: str | None, to_name: str, comment: str | None) -> str:
    description = f"Moved from {from_name or 'no stage'} to {to_name}"
    if comment:
        description = f"{description}. Comment: {comment}"
    return description


async def _lock_application(session: AsyncSession, application_id: int) -> JobApplication:
    application = (
        await session.execute(
            select(JobApplication)
            .where(JobApplication.application_id == application_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
    ).scalars().first()
    if not application:
        raise NotFoundError("Job application")
    return application


def target_stage_query(stage_id: int) -> Select:
    # Shared lock: moves into the same stage run side by side, delete_stage's exclusive lock waits for them.
    return (
        select(PipelineStage)
        .where(PipelineStage.stage_id == stage_id)
        .with_for_update(read=True)
        .execution_options(populate_existing=True)
    )


async def _lock_stage(session: AsyncSession, stage_id: int) -> PipelineStage:
    stage = (await session.execute(target_stage_query(stage_id))).scalars().first()
    if not stage:
        raise NotFoundError("Pipeline stage")
    return stage


async def move_to_stage(
    session: AsyncSession,
    *,
    application_id: int,
    target_stage_id: int,
    comment: str | None = None,
    actor_id: str | None = None,
    source: str | None = None,
    extra_meta: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> StageTransitionResult:
    application = await _lock_application(session, application_id)
    target = await _lock_stage(session, target_stage_id)
    if target.job_id != application.job_id:
        raise ValidationError.for_field("target_stage_id", "Target stage belongs to a different job")

    if target.stage_id == application.current_stage_id:
        return StageTransitionResult(
            application=application,
            current_stage=target,
            from_stage_name=target.name,
            changed=False,
        )

    comment_text = _clean_comment(comment)
    if target.requires_comment and comment_text is None:
        raise ValidationError.for_field("comment", "A comment is required when moving to a rejection stage")

    from_stage = await session.get(PipelineStage, application.current_stage_id)
    from_stage_id = application.current_stage_id
    moved_at = now or utcnow_naive()

    closed = await close_open_entries(session, application_id=application_id, exited_at=moved_at)
    from_stage_name = from_stage.name if from_stage else None
    if from_stage_name is None and closed:
        from_stage_name = closed[0].stage_name

    create_stage_entry(
        session,
        application_id=application_id,
        stage_id=target.stage_id,
        stage_name=target.name,
        comment=comment_text,
        moved_by=actor_id,
        entered_at=moved_at,
    )
    application.current_stage_id = target.stage_id
    application.updated_at = moved_at

    meta: dict[str, Any] = {
        "from_stage_id": from_stage_id,
        "from_stage_name": from_stage_name,
        "to_stage_id": target.stage_id,
        "to_stage_name": target.name,
    }
    if comment_text:
        meta["comment"] = comment_text
    if source:
        meta["source"] = source
    if extra_meta:
        meta.update(extra_meta)

    try:
        activity = await log_activity(
            session,
            candidate_id=application.candidate_id,
            application_id=application_id,
            activity_type=ACTIVITY_STAGE_CHANGE,
            description=_transition_description(from_stage_name, target.name, comment_text),
            related_entity_type="stage",
            related_entity_id=target.stage_id,
            performed_by=actor_id,
            meta_json=meta,
        )
    except IntegrityError as exc:
        raise ConflictError(
            "Application or stage changed while moving; retry with fresh data",
            {"application_id": application_id, "target_stage_id": target_stage_id},
        ) from exc

    logger.info(
        "application_moved",
        extra={
            "application_id": application_id,
            "from_stage_id": from_stage_id,
            "to_stage_id": target.stage_id,
            "moved_by": actor_id,
        },
    )
    return StageTransitionResult(
        application=application,
        current_stage=target,
        from_stage_name=from_stage_name,
        changed=True,
        activity=activity,
    )


async def add_application(
    session: AsyncSession,
    *,
    job_id: int,
    candidate_id: int,
    stage_id: int | None = None,
    actor_id: str | None = None,
    now: datetime | None = None,
) -> StageTransitionResult:
    job = await session.get(Job, job_id)
    if not job:
        raise NotFoundError("Job")
    candidate = await session.get(Candidate, candidate_id)
    if not candidate:
        raise NotFoundError("Candidate")

    existing = (
        await session.execute(
            select(JobApplication.application_id).where(
                JobApplication.job_id == job_id,
                JobApplication.candidate_id == candidate_id,
            )
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise ConflictError("Candidate already applied to this job", {"application_id": existing})

    if stage_id is not None:
        stage = await session.get(PipelineStage, stage_id)
        if not stage:
            raise NotFoundError("Pipeline stage")
        if stage.job_id != job_id:
            raise ValidationError.for_field("stage_id", "Stage belongs to a different job")
    else:
        stage = (
            await session.execute(
                select(PipelineStage)
                .where(PipelineStage.job_id == job_id)
                .order_by(PipelineStage.position.asc())
                .limit(1)
            )
        ).scalars().first()
        if not stage:
            raise ValidationError.for_field("stage_id", "Job has no pipeline stages")

    added_at = now or utcnow_naive()
    application = JobApplication(
        job_id=job_id,
        candidate_id=candidate_id,
        current_stage_id=stage.stage_id,
        applied_at=added_at,
        updated_at=added_at,
    )
    session.add(application)
    try:
        await session.flush()
        create_stage_entry(
            session,
            application_id=application.application_id,
            stage_id=stage.stage_id,
            stage_name=stage.name,
            moved_by=actor_id,
            entered_at=added_at,
        )
        activity = await log_activity(
            session,
            candidate_id=candidate_id,
            application_id=application.application_id,
            activity_type=ACTIVITY_ADDED_TO_JOB,
            description=f"Added to {job.title} in {stage.name}",
            related_entity_type="job",
            related_entity_id=job_id,
            performed_by=actor_id,
            meta_json={"job_id": job_id, "stage_id": stage.stage_id, "stage_name": stage.name},
        )
    except IntegrityError as exc:
        raise ConflictError(
            "Application could not be created; retry with fresh data",
            {"job_id": job_id, "candidate_id": candidate_id},
        ) from exc

    return StageTransitionResult(
        application=application,
        current_stage=stage,
        from_stage_name=None,
        changed=True,
        activity=activity,
    )


async def get_available_stages(session: AsyncSession, application_id: int) -> list[PipelineStage]:
    application = await session.get(JobApplication, application_id)
    if not application:
        raise NotFoundError("Job application")
    rows = (
        await session.execute(
            select(PipelineStage)
            .where(
                PipelineStage.job_id == application.job_id,
                PipelineStage.stage_id != application.current_stage_id,
            )
            .order_by(PipelineStage.position.asc())
        )
    ).scalars()
    return list(rows)


async def candidate_display_name(session: AsyncSession, application_id: int) -> str | None:
    return (
        await session.execute(
            select(Candidate.full_name)
            .join(JobApplication, JobApplication.candidate_id == Candidate.candidate_id)
            .where(JobApplication.application_id == application_id)
        )
    ).scalar_one_or_none()
