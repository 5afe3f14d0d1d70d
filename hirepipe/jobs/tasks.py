from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.db.session import SessionLocal
from hirepipe.models.activity import CandidateActivity
from hirepipe.models.sla_config import SlaConfig
from hirepipe.services.activity import (
    ACTIVITY_SLA_BREACH,
    activity_exists,
    log_activity,
    publish_activities,
)
from hirepipe.services.sla import SlaBreach, check_sla_breaches

logger = logging.getLogger(__name__)


def _breach_entity(breach: SlaBreach) -> tuple[str, int]:
    # One breach activity per stage visit; applications without a ledger row fall back to the application.
    if breach.history_id is not None:
        return "stage_history", breach.history_id
    return "job_application", breach.application_id


async def record_sla_breaches(
    session: AsyncSession,
    *,
    now: datetime | None = None,
) -> list[CandidateActivity]:
    company_ids = (await session.execute(select(SlaConfig.company_id).distinct())).scalars().all()
    recorded: list[CandidateActivity] = []
    for company_id in company_ids:
        for breach in await check_sla_breaches(session, company_id, now=now, include_at_risk=False):
            entity_type, entity_id = _breach_entity(breach)
            if await activity_exists(
                session,
                application_id=breach.application_id,
                activity_type=ACTIVITY_SLA_BREACH,
                related_entity_type=entity_type,
                related_entity_id=entity_id,
            ):
                continue
            recorded.append(
                await log_activity(
                    session,
                    candidate_id=breach.candidate_id,
                    application_id=breach.application_id,
                    activity_type=ACTIVITY_SLA_BREACH,
                    description=(
                        f"SLA breached in {breach.stage_name}: {breach.days_in_stage} days "
                        f"against a {breach.threshold_days} day threshold"
                    ),
                    related_entity_type=entity_type,
                    related_entity_id=entity_id,
                    meta_json={
                        "stage_id": breach.stage_id,
                        "stage_name": breach.stage_name,
                        "entered_at": breach.entered_at.isoformat(),
                        "days_in_stage": breach.days_in_stage,
                        "threshold_days": breach.threshold_days,
                        "days_overdue": breach.days_overdue,
                    },
                )
            )
    return recorded


async def run_sla_breach_sweep(session_factory: Callable[[], AsyncSession] = SessionLocal) -> int:
    async with session_factory() as session:
        recorded = await record_sla_breaches(session)
        await session.commit()
    await publish_activities(recorded)
    if recorded:
        logger.info("sla_breaches_recorded", extra={"count": len(recorded)})
    return len(recorded)
