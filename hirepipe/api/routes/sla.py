from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.api import deps
from hirepipe.schemas.sla import (
    SlaBreachOut,
    SlaConfigBatchIn,
    SlaConfigOut,
    SlaDefaultBatchIn,
    SlaDefaultOut,
    SlaEvaluationOut,
)
from hirepipe.services import sla as sla_service

router = APIRouter(tags=["sla"])


@router.get("/applications/{application_id}/sla", response_model=SlaEvaluationOut)
async def get_application_sla(
    application_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
):
    evaluation = await sla_service.evaluate_sla(session, application_id)
    return SlaEvaluationOut.model_validate(evaluation)


@router.get("/sla-defaults", response_model=list[SlaDefaultOut])
async def list_sla_defaults(session: AsyncSession = Depends(deps.get_db_session)):
    return [SlaDefaultOut(**item) for item in await sla_service.get_system_sla_defaults(session)]


@router.put("/sla-defaults", response_model=list[SlaDefaultOut])
async def replace_sla_defaults(
    payload: SlaDefaultBatchIn,
    session: AsyncSession = Depends(deps.get_db_session),
):
    defaults = await sla_service.update_system_sla_defaults(
        session,
        defaults=[(item.stage_name, item.threshold_days) for item in payload.defaults],
    )
    await session.commit()
    return [SlaDefaultOut(**item) for item in defaults]


@router.get("/companies/{company_id}/sla-configs", response_model=list[SlaConfigOut])
async def list_company_sla_configs(
    company_id: int,
    session: AsyncSession = Depends(deps.get_db_session),
):
    configs = await sla_service.list_sla_configs(session, company_id)
    return [SlaConfigOut.model_validate(config) for config in configs]


@router.put("/companies/{company_id}/sla-configs", response_model=list[SlaConfigOut])
async def upsert_company_sla_configs(
    company_id: int,
    payload: SlaConfigBatchIn,
    session: AsyncSession = Depends(deps.get_db_session),
):
    configs = await sla_service.upsert_sla_configs(
        session,
        company_id=company_id,
        configs=[(item.stage_name, item.threshold_days) for item in payload.configs],
    )
    await session.commit()
    return [SlaConfigOut.model_validate(config) for config in configs]


@router.delete("/companies/{company_id}/sla-configs/{stage_name}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_company_sla_config(
    company_id: int,
    stage_name: str,
    session: AsyncSession = Depends(deps.get_db_session),
):
    await sla_service.delete_sla_config(session, company_id=company_id, stage_name=stage_name)
    await session.commit()


@router.get("/companies/{company_id}/sla-breaches", response_model=list[SlaBreachOut])
async def list_company_sla_breaches(
    company_id: int,
    include_at_risk: bool = True,
    session: AsyncSession = Depends(deps.get_db_session),
):
    breaches = await sla_service.check_sla_breaches(session, company_id, include_at_risk=include_at_risk)
    return [SlaBreachOut.model_validate(breach) for breach in breaches]
