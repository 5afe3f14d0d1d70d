"""
Reusable stage layouts.

A template stores top-level stages with their sub-stages as JSON. Templates
can be authored directly, captured from an existing job, and applied to a job
that has no stages yet; applying goes through the same job-locked seeding path
as the default funnel.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.core.datetime_utils import utcnow_naive
from hirepipe.core.errors import ConflictError, NotFoundError, ValidationError
from hirepipe.core.stage_rules import StageTemplate, clean_stage_name
from hirepipe.models.company import Company
from hirepipe.models.job import Job
from hirepipe.models.stage import PipelineStage
from hirepipe.models.stage_template import PipelineStageTemplate
from hirepipe.services.pipeline import seed_stages_from_layout

logger = logging.getLogger(__name__)

JOB_LAYOUT_LIMIT = 50


@dataclass(frozen=True)
class JobStageLayout:
    job_id: int
    job_title: str
    stages: list[dict[str, Any]]
    created_at: datetime


def _ordered(items: Sequence[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    indexed = list(enumerate(items))
    indexed.sort(key=lambda pair: (pair[1].get("position", pair[0]), pair[0]))
    return [item for _, item in indexed]


def normalize_layout(stages: Sequence[Mapping[str, Any]] | None) -> list[dict[str, Any]]:
    """Validate a submitted layout and renumber its positions from zero."""
    if not stages:
        raise ValidationError.for_field("stages", "At least one stage is required")

    layout: list[dict[str, Any]] = []
    for position, stage in enumerate(_ordered(stages)):
        name = clean_stage_name(stage.get("name"))
        if name is None:
            raise ValidationError.for_field("stages", "Every stage needs a name")
        sub_stages = []
        for sub_position, sub_stage in enumerate(_ordered(stage.get("sub_stages") or [])):
            sub_name = clean_stage_name(sub_stage.get("name"))
            if sub_name is None:
                raise ValidationError.for_field("stages", f"Every sub-stage of {name} needs a name")
            sub_stages.append({"name": sub_name, "position": sub_position})
        layout.append(
            {
                "name": name,
                "position": position,
                "is_mandatory": bool(stage.get("is_mandatory", False)),
                "sub_stages": sub_stages,
            }
        )
    return layout


def template_layout(template: PipelineStageTemplate) -> list[dict[str, Any]]:
    try:
        stages = json.loads(template.stages_json)
    except ValueError:
        logger.warning("stage_template_unreadable", extra={"template_id": template.template_id})
        return []
    return stages if isinstance(stages, list) else []


def layout_from_stages(stages: Iterable[PipelineStage]) -> list[dict[str, Any]]:
    """Fold a job's flat stage list back into top-level stages with nested sub-stages."""
    ordered = sorted(stages, key=lambda stage: stage.position)
    children: dict[int, list[PipelineStage]] = {}
    for stage in ordered:
        if stage.parent_id is not None:
            children.setdefault(stage.parent_id, []).append(stage)

    layout = []
    for stage in ordered:
        if stage.parent_id is not None:
            continue
        layout.append(
            {
                "name": stage.name,
                "position": len(layout),
                "is_mandatory": stage.is_mandatory,
                "sub_stages": [
                    {"name": child.name, "position": index}
                    for index, child in enumerate(children.get(stage.stage_id, []))
                ],
            }
        )
    return layout


def _seed_layout(layout: Sequence[Mapping[str, Any]]) -> tuple[StageTemplate, ...]:
    return tuple(
        StageTemplate(
            name=stage["name"],
            is_mandatory=stage.get("is_mandatory", False),
            sub_stages=tuple(sub_stage["name"] for sub_stage in stage.get("sub_stages", [])),
        )
        for stage in layout
    )


def _clean_template_name(name: str | None) -> str:
    cleaned = clean_stage_name(name)
    if cleaned is None:
        raise ValidationError.for_field("name", "Template name is required")
    return cleaned


async def _ensure_unique_name(
    session: AsyncSession, company_id: int, name: str, exclude_id: int | None = None
) -> None:
    query = select(PipelineStageTemplate.template_id).where(
        PipelineStageTemplate.company_id == company_id,
        PipelineStageTemplate.name == name,
    )
    if exclude_id is not None:
        query = query.where(PipelineStageTemplate.template_id != exclude_id)
    if (await session.execute(query)).first() is not None:
        raise ValidationError.for_field("name", "Template name already exists")


async def _flush(session: AsyncSession, template: PipelineStageTemplate) -> PipelineStageTemplate:
    try:
        await session.flush()
    except IntegrityError as exc:
        raise ConflictError("Template name already exists", {"name": template.name}) from exc
    return template


async def create_template(
    session: AsyncSession,
    *,
    company_id: int,
    name: str | None,
    stages: Sequence[Mapping[str, Any]] | None,
    description: str | None = None,
    is_public: bool = False,
    created_by: str | None = None,
) -> PipelineStageTemplate:
    cleaned = _clean_template_name(name)
    layout = normalize_layout(stages)
    if not await session.get(Company, company_id):
        raise NotFoundError("Company")
    await _ensure_unique_name(session, company_id, cleaned)

    template = PipelineStageTemplate(
        company_id=company_id,
        name=cleaned,
        description=description,
        stages_json=json.dumps(layout, ensure_ascii=False),
        is_public=is_public,
        created_by=created_by,
    )
    session.add(template)
    await _flush(session, template)
    logger.info(
        "stage_template_created",
        extra={"template_id": template.template_id, "company_id": company_id, "created_by": created_by},
    )
    return template


async def list_templates(
    session: AsyncSession, company_id: int, *, actor_id: str | None = None
) -> list[PipelineStageTemplate]:
    """Public templates of the company plus the caller's own private ones."""
    visible = PipelineStageTemplate.is_public.is_(True)
    if actor_id:
        visible = or_(visible, PipelineStageTemplate.created_by == actor_id)
    rows = (
        await session.execute(
            select(PipelineStageTemplate)
            .where(PipelineStageTemplate.company_id == company_id, visible)
            .order_by(PipelineStageTemplate.name.asc())
        )
    ).scalars()
    return list(rows)


async def get_template(session: AsyncSession, template_id: int) -> PipelineStageTemplate:
    template = await session.get(PipelineStageTemplate, template_id)
    if not template:
        raise NotFoundError("Stage template")
    return template


async def update_template(
    session: AsyncSession,
    template_id: int,
    *,
    name: str | None = None,
    description: str | None = None,
    is_public: bool | None = None,
    stages: Sequence[Mapping[str, Any]] | None = None,
) -> PipelineStageTemplate:
    template = await get_template(session, template_id)
    if name is not None:
        cleaned = _clean_template_name(name)
        if cleaned != template.name:
            await _ensure_unique_name(session, template.company_id, cleaned, exclude_id=template_id)
            template.name = cleaned
    if stages is not None:
        template.stages_json = json.dumps(normalize_layout(stages), ensure_ascii=False)
    if description is not None:
        template.description = description
    if is_public is not None:
        template.is_public = is_public
    template.updated_at = utcnow_naive()
    return await _flush(session, template)


async def delete_template(session: AsyncSession, template_id: int) -> None:
    template = await get_template(session, template_id)
    await session.delete(template)
    await session.flush()


async def job_stage_layouts(session: AsyncSession, company_id: int) -> list[JobStageLayout]:
    """Stage layouts of the company's most recent jobs, for picking one to import."""
    jobs = (
        await session.execute(
            select(Job)
            .where(Job.company_id == company_id)
            .order_by(Job.created_at.desc(), Job.job_id.desc())
            .limit(JOB_LAYOUT_LIMIT)
        )
    ).scalars().all()
    if not jobs:
        return []

    by_job: dict[int, list[PipelineStage]] = {}
    stages = (
        await session.execute(
            select(PipelineStage).where(PipelineStage.job_id.in_([job.job_id for job in jobs]))
        )
    ).scalars()
    for stage in stages:
        by_job.setdefault(stage.job_id, []).append(stage)

    return [
        JobStageLayout(
            job_id=job.job_id,
            job_title=job.title,
            stages=layout_from_stages(by_job[job.job_id]),
            created_at=job.created_at,
        )
        for job in jobs
        if job.job_id in by_job
    ]


async def import_from_job(
    session: AsyncSession,
    *,
    job_id: int,
    name: str | None,
    description: str | None = None,
    is_public: bool = False,
    created_by: str | None = None,
) -> PipelineStageTemplate:
    job = await session.get(Job, job_id)
    if not job:
        raise NotFoundError("Job")
    stages = (
        await session.execute(select(PipelineStage).where(PipelineStage.job_id == job_id))
    ).scalars().all()
    if not stages:
        raise ValidationError.for_field("job_id", "Job has no pipeline stages to import")

    return await create_template(
        session,
        company_id=job.company_id,
        name=name,
        stages=layout_from_stages(stages),
        description=description or f"Imported from job: {job.title}",
        is_public=is_public,
        created_by=created_by,
    )


async def apply_template(session: AsyncSession, *, job_id: int, template_id: int) -> list[PipelineStage]:
    template = await get_template(session, template_id)
    job = await session.get(Job, job_id)
    if not job:
        raise NotFoundError("Job")
    if template.company_id != job.company_id:
        raise ValidationError.for_field("template_id", "Template belongs to a different company")

    layout = template_layout(template)
    if not layout:
        raise ValidationError.for_field("template_id", "Template has no stages")
    stages = await seed_stages_from_layout(session, job_id=job_id, layout=_seed_layout(layout))
    logger.info("stage_template_applied", extra={"job_id": job_id, "template_id": template_id})
    return stages
