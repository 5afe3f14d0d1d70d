"""
Moves many applications to one stage.

Each application is moved in its own session and transaction, so one bad item
never rolls back the others. Failures are collected as data in input order; a
caller that gives up halfway leaves committed items committed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

import anyio
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hirepipe.core.config import settings
from hirepipe.core.errors import ConflictError, PipelineError, StoreError, ValidationError
from hirepipe.services.activity import publish_activities
from hirepipe.services.stage_transitions import candidate_display_name, move_to_stage

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncSession]


@dataclass(frozen=True)
class BulkMoveFailure:
    application_id: int
    error: str
    error_code: str
    candidate_name: str | None = None


@dataclass
class BulkMoveResult:
    moved_count: int = 0
    failures: list[BulkMoveFailure] = field(default_factory=list)

    @property
    def failed_count(self) -> int:
        return len(self.failures)

    @property
    def success(self) -> bool:
        return self.failed_count == 0


async def _candidate_name(session_factory: SessionFactory, application_id: int) -> str | None:
    async with session_factory() as session:
        try:
            return await candidate_display_name(session, application_id)
        except SQLAlchemyError:
            logger.warning("candidate_name_lookup_failed", extra={"application_id": application_id}, exc_info=True)
            return None


async def _move_one(
    session_factory: SessionFactory,
    *,
    application_id: int,
    target_stage_id: int,
    comment: str | None,
    actor_id: str | None,
) -> BulkMoveFailure | None:
    async with session_factory() as session:
        try:
            result = await move_to_stage(
                session,
                application_id=application_id,
                target_stage_id=target_stage_id,
                comment=comment,
                actor_id=actor_id,
                source="bulk_move",
                extra_meta={"bulk_move": True},
            )
            await session.commit()
        except PipelineError as exc:
            await session.rollback()
            error: PipelineError = exc
        except IntegrityError as exc:
            await session.rollback()
            error = ConflictError("Application or stage changed while moving; retry with fresh data")
            logger.warning("bulk_move_item_conflict", extra={"application_id": application_id}, exc_info=exc)
        except SQLAlchemyError as exc:
            await session.rollback()
            error = StoreError("Store failure while moving; retry the move")
            logger.warning("bulk_move_item_store_error", extra={"application_id": application_id}, exc_info=exc)
        else:
            if result.activity is not None:
                await publish_activities([result.activity])
            return None

    return BulkMoveFailure(
        application_id=application_id,
        error=error.message,
        error_code=error.code,
        candidate_name=await _candidate_name(session_factory, application_id),
    )


async def bulk_move(
    session_factory: SessionFactory,
    *,
    application_ids: Sequence[int],
    target_stage_id: int,
    comment: str | None = None,
    actor_id: str | None = None,
    max_concurrency: int = 1,
) -> BulkMoveResult:
    if not application_ids:
        raise ValidationError.for_field("application_ids", "At least one application id is required")
    if len(application_ids) > settings.bulk_move_max_items:
        raise ValidationError.for_field(
            "application_ids", f"At most {settings.bulk_move_max_items} applications can be moved at once"
        )

    outcomes: list[BulkMoveFailure | None] = [None] * len(application_ids)

    async def _run(index: int, application_id: int) -> None:
        outcomes[index] = await _move_one(
            session_factory,
            application_id=application_id,
            target_stage_id=target_stage_id,
            comment=comment,
            actor_id=actor_id,
        )

    if max_concurrency <= 1:
        for index, application_id in enumerate(application_ids):
            await _run(index, application_id)
    else:
        limiter = anyio.CapacityLimiter(max_concurrency)

        async def _run_limited(index: int, application_id: int) -> None:
            async with limiter:
                await _run(index, application_id)

        async with anyio.create_task_group() as tg:
            for index, application_id in enumerate(application_ids):
                tg.start_soon(_run_limited, index, application_id)

    result = BulkMoveResult()
    for outcome in outcomes:
        if outcome is None:
            result.moved_count += 1
        else:
            result.failures.append(outcome)

    logger.info(
        "bulk_move_completed",
        extra={
            "target_stage_id": target_stage_id,
            "moved_count": result.moved_count,
            "failed_count": result.failed_count,
            "moved_by": actor_id,
        },
    )
    return result
