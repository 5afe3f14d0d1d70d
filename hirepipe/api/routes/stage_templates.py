from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.api import deps
from hirepipe.models.stage_template import PipelineStageTemplate
from hirepipe.schemas.stage import PipelineStageOut
from hirepipe.schemas.stage_template import (
    JobStageLayoutOut,
    StageTemplateApplyRequest,
    StageTemplateCreateRequest,
    StageTemplateImportRequest,
    StageTemplateOut,
    StageTemplateUpdateRequest,
)
from hirepipe.services import stage_templates

router = APIRouter(tags=["stage-templates"])


def _template_out(template: PipelineStageTemplate) -> StageTemplateOut:
    return StageTemplateOut(
        template_id=template.template_id,
        company_id=template.company_id,
        name=template.name,
        description=template.description,
        is_public=template.is_public,
        created_by=template.created_by,
        stages=stage_templates.template_layout(template),
        created_at=template.created_at,
        updated_at=template.updated_at,
    )


@router.get("/companies/{company_id}/stage-templates", response_model=list[StageTemplateOut])
async def list_company_stage_templates(
    company_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
    actor_id: str | None = Depends(deps.get_actor_id),
):
    templates = await stage_templates.list_templates(session, company_id, actor_id=actor_id)
    return [_template_out(template) for template in templates]


@router.post(
    "/companies/{company_id}/stage-templates",
    response_model=StageTemplateOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_company_stage_template(
    company_id: int,
    payload: StageTemplateCreateRequest,
    session: AsyncSession = Depends(deps.get_db_session),
    actor_id: str | None = Depends(deps.get_actor_id),
):
    template = await stage_templates.create_template(
        session,
        company_id=company_id,
        name=payload.name,
        stages=[stage.model_dump() for stage in payload.stages],
        description=payload.description,
        is_public=payload.is_public,
        created_by=actor_id,
    )
    await session.commit()
    return _template_out(template)


@router.get("/companies/{company_id}/stage-templates/from-jobs", response_model=list[JobStageLayoutOut])
async def list_job_stage_layouts(
    company_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
):
    layouts = await stage_templates.job_stage_layouts(session, company_id)
    return [JobStageLayoutOut.model_validate(layout) for layout in layouts]


@router.post(
    "/stage-templates/import-from-job",
    response_model=StageTemplateOut,
    status_code=status.HTTP_201_CREATED,
)
async def import_stage_template_from_job(
    payload: StageTemplateImportRequest,
    session: AsyncSession = Depends(deps.get_db_session),
    actor_id: str | None = Depends(deps.get_actor_id),
):
    template = await stage_templates.import_from_job(
        session,
        job_id=payload.job_id,
        name=payload.name,
        description=payload.description,
        is_public=payload.is_public,
        created_by=actor_id,
    )
    await session.commit()
    return _template_out(template)


@router.get("/stage-templates/{template_id}", response_model=StageTemplateOut)
async def get_stage_template(
    template_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
):
    return _template_out(await stage_templates.get_template(session, template_id))


@router.put("/stage-templates/{template_id}", response_model=StageTemplateOut)
async def update_stage_template(
    template_id: int,
    payload: StageTemplateUpdateRequest,
    session: AsyncSession = Depends(deps.get_db_session),
):
    template = await stage_templates.update_template(
        session,
        template_id,
        name=payload.name,
        description=payload.description,
        is_public=payload.is_public,
        stages=None if payload.stages is None else [stage.model_dump() for stage in payload.stages],
    )
    await session.commit()
    return _template_out(template)


@router.delete("/stage-templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_stage_template(
    template_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
):
    await stage_templates.delete_template(session, template_id)
    await session.commit()


@router.post(
    "/jobs/{job_id}/stages/from-template",
    response_model=list[PipelineStageOut],
    status_code=status.HTTP_201_CREATED,
)
async def apply_stage_template(
    job_id: int,
    payload: StageTemplateApplyRequest,
    session: AsyncSession = Depends(deps.get_db_session),
):
    stages = await stage_templates.apply_template(session, job_id=job_id, template_id=payload.template_id)
    await session.commit()
    return [PipelineStageOut.model_validate(stage) for stage in stages]
