from typing import Callable

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.api import deps
from hirepipe.schemas.activity import CandidateActivityOut
from hirepipe.schemas.application import (
    ApplicationCreateRequest,
    JobApplicationOut,
    MoveToStageOut,
    MoveToStageRequest,
)
from hirepipe.schemas.bulk import BulkMoveFailureOut, BulkMoveOut, BulkMoveRequest
from hirepipe.schemas.history import StageHistoryOut
from hirepipe.schemas.stage import PipelineStageOut
from hirepipe.services.activity import activity_meta, list_application_activities, publish_activities
from hirepipe.services.bulk_move import bulk_move
from hirepipe.services.stage_history import get_stage_history
from hirepipe.services.stage_transitions import (
    StageTransitionResult,
    add_application,
    get_available_stages,
    move_to_stage,
)

router = APIRouter(tags=["applications"])


def _move_out(result: StageTransitionResult) -> MoveToStageOut:
    return MoveToStageOut(
        application=JobApplicationOut.model_validate(result.application),
        current_stage=PipelineStageOut.model_validate(result.current_stage),
        from_stage_name=result.from_stage_name,
        changed=result.changed,
    )


@router.post(
    "/jobs/{job_id}/applications",
    response_model=MoveToStageOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_application(
    job_id: int,
    payload: ApplicationCreateRequest,
    session: AsyncSession = Depends(deps.get_db_session),
    actor_id: str | None = Depends(deps.get_actor_id),
):
    result = await add_application(
        session,
        job_id=job_id,
        candidate_id=payload.candidate_id,
        stage_id=payload.stage_id,
        actor_id=actor_id,
    )
    await session.commit()
    if result.activity is not None:
        await publish_activities([result.activity])
    return _move_out(result)


@router.post("/applications/bulk-move", response_model=BulkMoveOut)
async def bulk_move_applications(
    payload: BulkMoveRequest,
    response: Response,
    session_factory: Callable[[], AsyncSession] = Depends(deps.get_session_factory),
    actor_id: str | None = Depends(deps.get_actor_id),
):
    result = await bulk_move(
        session_factory,
        application_ids=payload.application_ids,
        target_stage_id=payload.target_stage_id,
        comment=payload.comment,
        actor_id=actor_id,
    )
    if result.moved_count and result.failed_count:
        response.status_code = status.HTTP_207_MULTI_STATUS
    return BulkMoveOut(
        success=result.success,
        moved_count=result.moved_count,
        failed_count=result.failed_count,
        failures=[
            BulkMoveFailureOut(
                application_id=failure.application_id,
                candidate_name=failure.candidate_name,
                error=failure.error,
                error_code=failure.error_code,
            )
            for failure in result.failures
        ],
    )


@router.post("/applications/{application_id}/move", response_model=MoveToStageOut)
async def move_application(
    application_id: int,
    payload: MoveToStageRequest,
    session: AsyncSession = Depends(deps.get_db_session),
    actor_id: str | None = Depends(deps.get_actor_id),
):
    result = await move_to_stage(
        session,
        application_id=application_id,
        target_stage_id=payload.target_stage_id,
        comment=payload.comment,
        actor_id=actor_id,
        source="api",
    )
    if result.changed:
        await session.commit()
        if result.activity is not None:
            await publish_activities([result.activity])
    return _move_out(result)


@router.get("/applications/{application_id}/available-stages", response_model=list[PipelineStageOut])
async def list_available_stages(
    application_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
):
    stages = await get_available_stages(session, application_id)
    return [PipelineStageOut.model_validate(stage) for stage in stages]


@router.get("/applications/{application_id}/history", response_model=list[StageHistoryOut])
async def list_stage_history(
    application_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
):
    entries = await get_stage_history(session, application_id)
    return [StageHistoryOut.model_validate(entry) for entry in entries]


@router.get("/applications/{application_id}/activities", response_model=list[CandidateActivityOut])
async def list_activities(
    application_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
):
    rows = await list_application_activities(session, application_id)
    return [
        CandidateActivityOut(
            activity_id=activity.activity_id,
            candidate_id=activity.candidate_id,
            application_id=activity.application_id,
            activity_type=activity.activity_type,
            description=activity.description,
            performed_by=activity.performed_by,
            meta_json=activity_meta(activity),
            created_at=activity.created_at,
        )
        for activity in rows
    ]
