from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Mapping

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.core.config import settings
from hirepipe.core.datetime_utils import hours_between, utcnow_naive
from hirepipe.core.errors import NotFoundError, ValidationError
from hirepipe.core.stage_rules import clean_stage_name, stage_name_key
from hirepipe.models.application import JobApplication
from hirepipe.models.candidate import Candidate
from hirepipe.models.company import Company
from hirepipe.models.job import JOB_STATUS_ACTIVE, Job
from hirepipe.models.sla_config import SlaConfig
from hirepipe.models.sla_default import SystemSlaDefault
from hirepipe.models.stage import PipelineStage
from hirepipe.models.stage_history import StageHistory
from hirepipe.services.stage_history import get_current_stage_entry


class SlaStatus(str, Enum):
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    BREACHED = "breached"


# Reference thresholds offered to companies that have not configured their own.
DEFAULT_SLA_THRESHOLDS: tuple[tuple[str, int], ...] = (
    ("Applied", 3),
    ("Screening", 5),
    ("Interview", 7),
    ("Technical Round", 7),
    ("HR Round", 5),
    ("Offer", 3),
)


@dataclass(frozen=True)
class SlaEvaluation:
    application_id: int
    stage_id: int
    stage_name: str
    entered_at: datetime
    hours_in_stage: float
    threshold_days: int | None
    threshold_hours: float | None
    grace_multiplier: float
    status: SlaStatus


@dataclass(frozen=True)
class SlaBreach:
    application_id: int
    candidate_id: int
    candidate_name: str
    job_id: int
    job_title: str
    stage_id: int
    stage_name: str
    history_id: int | None
    entered_at: datetime
    days_in_stage: int
    threshold_days: int
    days_overdue: int
    status: SlaStatus


def classify_sla(
    hours_in_stage: float,
    threshold_days: int | None,
    grace_multiplier: float | None = None,
) -> SlaStatus:
    """
    Three-way classification against a per-stage threshold.

    on_track below the threshold, at_risk inside [threshold, threshold * grace),
    breached from threshold * grace on. No threshold means nothing can breach.
    """
    if threshold_days is None:
        return SlaStatus.ON_TRACK
    grace = settings.sla_grace_multiplier if grace_multiplier is None else grace_multiplier
    threshold_hours = threshold_days * 24
    if hours_in_stage < threshold_hours:
        return SlaStatus.ON_TRACK
    if hours_in_stage < threshold_hours * grace:
        return SlaStatus.AT_RISK
    return SlaStatus.BREACHED


def threshold_map(configs: Iterable[SlaConfig]) -> dict[str, int]:
    return {stage_name_key(config.stage_name): config.threshold_days for config in configs}


def evaluate(
    application: JobApplication,
    *,
    stage: PipelineStage,
    entered_at: datetime,
    thresholds: Mapping[str, int],
    now: datetime | None = None,
    grace_multiplier: float | None = None,
) -> SlaEvaluation:
    grace = settings.sla_grace_multiplier if grace_multiplier is None else grace_multiplier
    hours_in_stage = max(hours_between(entered_at, now or utcnow_naive()), 0.0)
    threshold_days = thresholds.get(stage_name_key(stage.name))
    return SlaEvaluation(
        application_id=application.application_id,
        stage_id=stage.stage_id,
        stage_name=stage.name,
        entered_at=entered_at,
        hours_in_stage=hours_in_stage,
        threshold_days=threshold_days,
        threshold_hours=threshold_days * 24 if threshold_days is not None else None,
        grace_multiplier=grace,
        status=classify_sla(hours_in_stage, threshold_days, grace),
    )


async def _require_company(session: AsyncSession, company_id: int) -> Company:
    company = await session.get(Company, company_id)
    if not company:
        raise NotFoundError("Company")
    return company


async def _company_configs(session: AsyncSession, company_id: int) -> list[SlaConfig]:
    rows = (
        await session.execute(
            select(SlaConfig).where(SlaConfig.company_id == company_id).order_by(SlaConfig.stage_name.asc())
        )
    ).scalars()
    return list(rows)


async def evaluate_sla(
    session: AsyncSession,
    application_id: int,
    *,
    now: datetime | None = None,
) -> SlaEvaluation:
    application = await session.get(JobApplication, application_id)
    if not application:
        raise NotFoundError("Job application")
    stage = await session.get(PipelineStage, application.current_stage_id)
    if not stage:
        raise NotFoundError("Pipeline stage")
    job = await session.get(Job, application.job_id)
    if not job:
        raise NotFoundError("Job")

    entry = await get_current_stage_entry(session, application_id)
    entered_at = entry.entered_at if entry else application.applied_at
    configs = await _company_configs(session, job.company_id)
    return evaluate(application, stage=stage, entered_at=entered_at, thresholds=threshold_map(configs), now=now)


async def list_sla_configs(session: AsyncSession, company_id: int) -> list[SlaConfig]:
    await _require_company(session, company_id)
    return await _company_configs(session, company_id)


def _checked_threshold(stage_name: str | None, threshold_days: int | None) -> tuple[str, int]:
    errors: dict[str, list[str]] = {}
    cleaned = clean_stage_name(stage_name)
    if cleaned is None:
        errors["stage_name"] = ["Stage name is required"]
    if threshold_days is None:
        errors["threshold_days"] = ["Threshold days is required"]
    elif isinstance(threshold_days, bool) or not isinstance(threshold_days, int):
        errors["threshold_days"] = ["Threshold days must be a whole number"]
    elif threshold_days < 1:
        errors["threshold_days"] = ["Threshold days must be at least 1"]
    if errors:
        raise ValidationError("Invalid SLA configuration", errors)
    return cleaned, threshold_days


async def upsert_sla_config(
    session: AsyncSession,
    *,
    company_id: int,
    stage_name: str | None,
    threshold_days: int | None,
) -> SlaConfig:
    cleaned, threshold_days = _checked_threshold(stage_name, threshold_days)
    await _require_company(session, company_id)
    config = (
        await session.execute(
            select(SlaConfig).where(
                SlaConfig.company_id == company_id,
                func.lower(SlaConfig.stage_name) == stage_name_key(cleaned),
            )
        )
    ).scalars().first()
    if config:
        config.stage_name = cleaned
        config.threshold_days = threshold_days
        config.updated_at = utcnow_naive()
    else:
        config = SlaConfig(company_id=company_id, stage_name=cleaned, threshold_days=threshold_days)
        session.add(config)
    await session.flush()
    return config


async def upsert_sla_configs(
    session: AsyncSession,
    *,
    company_id: int,
    configs: Iterable[tuple[str | None, int | None]],
) -> list[SlaConfig]:
    results: list[SlaConfig] = []
    for stage_name, threshold_days in configs:
        results.append(
            await upsert_sla_config(
                session, company_id=company_id, stage_name=stage_name, threshold_days=threshold_days
            )
        )
    return results


async def delete_sla_config(session: AsyncSession, *, company_id: int, stage_name: str) -> None:
    config = (
        await session.execute(
            select(SlaConfig).where(
                SlaConfig.company_id == company_id,
                func.lower(SlaConfig.stage_name) == stage_name_key(stage_name),
            )
        )
    ).scalars().first()
    if not config:
        raise NotFoundError("SLA configuration")
    await session.delete(config)
    await session.flush()


def default_sla_thresholds() -> list[dict[str, int | str]]:
    return [{"stage_name": name, "threshold_days": days} for name, days in DEFAULT_SLA_THRESHOLDS]


async def get_system_sla_defaults(session: AsyncSession) -> list[dict[str, int | str]]:
    rows = (
        await session.execute(select(SystemSlaDefault).order_by(SystemSlaDefault.stage_name.asc()))
    ).scalars().all()
    if not rows:
        return default_sla_thresholds()
    return [{"stage_name": row.stage_name, "threshold_days": row.threshold_days} for row in rows]


async def update_system_sla_defaults(
    session: AsyncSession,
    *,
    defaults: Iterable[tuple[str | None, int | None]],
) -> list[dict[str, int | str]]:
    """Replace the stored reference thresholds wholesale."""
    checked: dict[str, tuple[str, int]] = {}
    for stage_name, threshold_days in defaults:
        cleaned, days = _checked_threshold(stage_name, threshold_days)
        key = stage_name_key(cleaned)
        if key in checked:
            raise ValidationError.for_field("stage_name", f"Duplicate stage name: {cleaned}")
        checked[key] = (cleaned, days)
    if not checked:
        raise ValidationError.for_field("defaults", "At least one default threshold is required")

    await session.execute(delete(SystemSlaDefault))
    session.add_all(
        SystemSlaDefault(stage_name=cleaned, threshold_days=days) for cleaned, days in checked.values()
    )
    await session.flush()
    return await get_system_sla_defaults(session)


async def check_sla_breaches(
    session: AsyncSession,
    company_id: int,
    *,
    now: datetime | None = None,
    include_at_risk: bool = True,
) -> list[SlaBreach]:
    """Applications on the company's active jobs that sit past their stage threshold, most overdue first."""
    await _require_company(session, company_id)
    thresholds = threshold_map(await _company_configs(session, company_id))
    if not thresholds:
        return []

    now = now or utcnow_naive()
    open_entry = (
        select(
            StageHistory.application_id.label("application_id"),
            func.max(StageHistory.history_id).label("history_id"),
        )
        .where(StageHistory.exited_at.is_(None))
        .group_by(StageHistory.application_id)
        .subquery()
    )
    rows = (
        await session.execute(
            select(JobApplication, Candidate, Job, PipelineStage, StageHistory)
            .join(Candidate, Candidate.candidate_id == JobApplication.candidate_id)
            .join(Job, Job.job_id == JobApplication.job_id)
            .join(PipelineStage, PipelineStage.stage_id == JobApplication.current_stage_id)
            .outerjoin(open_entry, open_entry.c.application_id == JobApplication.application_id)
            .outerjoin(StageHistory, StageHistory.history_id == open_entry.c.history_id)
            .where(Job.company_id == company_id, Job.status == JOB_STATUS_ACTIVE)
        )
    ).all()

    breaches: list[SlaBreach] = []
    for application, candidate, job, stage, entry in rows:
        entered_at = entry.entered_at if entry else application.applied_at
        evaluation = evaluate(application, stage=stage, entered_at=entered_at, thresholds=thresholds, now=now)
        if evaluation.status == SlaStatus.ON_TRACK:
            continue
        if evaluation.status == SlaStatus.AT_RISK and not include_at_risk:
            continue
        days_in_stage = evaluation.hours_in_stage / 24
        breaches.append(
            SlaBreach(
                application_id=application.application_id,
                candidate_id=candidate.candidate_id,
                candidate_name=candidate.full_name,
                job_id=job.job_id,
                job_title=job.title,
                stage_id=stage.stage_id,
                stage_name=stage.name,
                history_id=entry.history_id if entry else None,
                entered_at=entered_at,
                days_in_stage=math.floor(days_in_stage),
                threshold_days=evaluation.threshold_days,
                days_overdue=max(math.floor(days_in_stage - evaluation.threshold_days), 0),
                status=evaluation.status,
            )
        )

    breaches.sort(key=lambda breach: (breach.days_overdue, breach.days_in_stage), reverse=True)
    return breaches
