from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.api import deps
from hirepipe.schemas.stage import PipelineStageOut, StageInsertRequest, StageReorderRequest
from hirepipe.services import pipeline

router = APIRouter(tags=["stages"])


@router.get("/jobs/{job_id}/stages", response_model=list[PipelineStageOut])
async def list_job_stages(
    job_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
):
    stages = await pipeline.get_stages(session, job_id)
    return [PipelineStageOut.model_validate(stage) for stage in stages]


@router.post("/jobs/{job_id}/stages", response_model=PipelineStageOut, status_code=status.HTTP_201_CREATED)
async def insert_job_stage(
    job_id: int,
    payload: StageInsertRequest,
    session: AsyncSession = Depends(deps.get_db_session),
):
    stage = await pipeline.insert_stage(
        session,
        job_id=job_id,
        name=payload.name,
        position=payload.position,
        parent_id=payload.parent_id,
        requires_comment=payload.requires_comment,
    )
    await session.commit()
    return PipelineStageOut.model_validate(stage)


@router.post(
    "/jobs/{job_id}/stages/defaults",
    response_model=list[PipelineStageOut],
    status_code=status.HTTP_201_CREATED,
)
async def seed_job_default_stages(
    job_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
):
    stages = await pipeline.seed_default_stages(session, job_id=job_id)
    await session.commit()
    return [PipelineStageOut.model_validate(stage) for stage in stages]


@router.patch("/stages/{stage_id}/position", response_model=list[PipelineStageOut])
async def reorder_job_stage(
    stage_id: int,
    payload: StageReorderRequest,
    session: AsyncSession = Depends(deps.get_db_session),
):
    stages = await pipeline.reorder_stage(session, stage_id=stage_id, new_position=payload.new_position)
    await session.commit()
    return [PipelineStageOut.model_validate(stage) for stage in stages]


@router.delete("/stages/{stage_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_job_stage(
    stage_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
):
    await pipeline.delete_stage(session, stage_id=stage_id)
    await session.commit()
