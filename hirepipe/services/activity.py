from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.models.activity import CandidateActivity
from hirepipe.services.event_bus import activity_fanout, encode_activity

ACTIVITY_STAGE_CHANGE = "stage_change"
ACTIVITY_ADDED_TO_JOB = "added_to_job"
ACTIVITY_SLA_BREACH = "sla_breach"


def activity_meta(activity: CandidateActivity) -> Dict[str, Any]:
    if not activity.meta_json:
        return {}
    try:
        meta = json.loads(activity.meta_json)
    except ValueError:
        return {}
    return meta if isinstance(meta, dict) else {}


async def log_activity(
    session: AsyncSession,
    *,
    candidate_id: int,
    activity_type: str,
    description: str,
    application_id: int | None = None,
    related_entity_type: str | None = None,
    related_entity_id: int | None = None,
    performed_by: str | None = None,
    meta_json: Dict[str, Any] | None = None,
) -> CandidateActivity:
    meta_text: Optional[str] = None
    if meta_json is not None:
        meta_text = encode_activity(meta_json)

    activity = CandidateActivity(
        candidate_id=candidate_id,
        application_id=application_id,
        activity_type=activity_type,
        description=description,
        related_entity_type=related_entity_type,
        related_entity_id=related_entity_id,
        performed_by=performed_by,
        meta_json=meta_text,
    )
    session.add(activity)
    await session.flush()
    return activity


async def publish_activities(activities: Iterable[CandidateActivity]) -> None:
    """Hand committed activity entries to subscribers. Call only after commit."""
    for activity in activities:
        await activity_fanout.publish(
            {
                "activity_id": activity.activity_id,
                "candidate_id": activity.candidate_id,
                "application_id": activity.application_id,
                "activity_type": activity.activity_type,
                "description": activity.description,
            }
        )


async def list_application_activities(session: AsyncSession, application_id: int) -> list[CandidateActivity]:
    rows = (
        await session.execute(
            select(CandidateActivity)
            .where(CandidateActivity.application_id == application_id)
            .order_by(CandidateActivity.created_at.asc(), CandidateActivity.activity_id.asc())
        )
    ).scalars()
    return list(rows)


async def activity_exists(
    session: AsyncSession,
    *,
    application_id: int,
    activity_type: str,
    related_entity_type: str,
    related_entity_id: int | None,
) -> bool:
    count = (
        await session.execute(
            select(func.count())
            .select_from(CandidateActivity)
            .where(
                CandidateActivity.application_id == application_id,
                CandidateActivity.activity_type == activity_type,
                CandidateActivity.related_entity_type == related_entity_type,
                CandidateActivity.related_entity_id == related_entity_id,
            )
        )
    ).scalar_one()
    return count > 0
