import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from hirepipe.core.errors import ValidationError
from hirepipe.models import JobApplication, StageHistory
from hirepipe.services import bulk_move as bulk_move_service
from hirepipe.services.bulk_move import bulk_move
from hirepipe.services.stage_transitions import add_application


async def _applications(db_session, seeded, stage="Interview"):
    ids = []
    for candidate in seeded.candidates:
        result = await add_application(
            db_session,
            job_id=seeded.job.job_id,
            candidate_id=candidate.candidate_id,
            stage_id=seeded.stages[stage].stage_id,
        )
        ids.append(result.application.application_id)
    await db_session.commit()
    return ids


async def _current_stage_ids(session_factory, ids):
    async with session_factory() as session:
        rows = (
            await session.execute(
                select(JobApplication.application_id, JobApplication.current_stage_id).where(
                    JobApplication.application_id.in_(ids)
                )
            )
        ).all()
    return dict(rows)


async def test_bulk_move_reports_missing_application(db_session, session_factory, seeded):
    a1, a2, a3 = await _applications(db_session, seeded)
    offer_id = seeded.stages["Offer"].stage_id
    application = await db_session.get(JobApplication, a2)
    await db_session.delete(application)
    await db_session.commit()

    result = await bulk_move(session_factory, application_ids=[a1, a2, a3], target_stage_id=offer_id)

    assert result.moved_count == 2
    assert result.failed_count == 1
    assert result.success is False
    assert [failure.application_id for failure in result.failures] == [a2]
    assert result.failures[0].error_code == "not_found"
    assert await _current_stage_ids(session_factory, [a1, a3]) == {a1: offer_id, a3: offer_id}


async def test_bulk_move_isolates_validation_failures(db_session, session_factory, seeded, make_job):
    ids = await _applications(db_session, seeded)
    other = await make_job(title="Data Analyst", candidate_count=1)
    foreign = await add_application(
        db_session,
        job_id=other.job.job_id,
        candidate_id=other.candidates[0].candidate_id,
        stage_id=other.stages["Applied"].stage_id,
    )
    foreign_id = foreign.application.application_id
    offer_id = seeded.stages["Offer"].stage_id
    await db_session.commit()

    result = await bulk_move(
        session_factory,
        application_ids=[ids[0], foreign_id, ids[1]],
        target_stage_id=offer_id,
        actor_id="recruiter-1",
    )

    assert result.moved_count == 2
    assert [failure.application_id for failure in result.failures] == [foreign_id]
    assert result.failures[0].error_code == "validation_error"
    assert result.failures[0].candidate_name == "Candidate 1"


async def test_bulk_move_rejection_needs_comment_for_every_item(db_session, session_factory, seeded):
    ids = await _applications(db_session, seeded)
    rejected_id = seeded.stages["Rejected"].stage_id

    without = await bulk_move(session_factory, application_ids=ids, target_stage_id=rejected_id)
    with_comment = await bulk_move(
        session_factory, application_ids=ids, target_stage_id=rejected_id, comment="Role closed"
    )

    assert without.moved_count == 0
    assert without.failed_count == 3
    assert {failure.error_code for failure in without.failures} == {"validation_error"}
    assert with_comment.success is True
    assert with_comment.moved_count == 3

    async with session_factory() as session:
        comments = (
            await session.execute(
                select(StageHistory.comment).where(
                    StageHistory.application_id.in_(ids), StageHistory.exited_at.is_(None)
                )
            )
        ).scalars().all()
    assert comments == ["Role closed"] * 3


async def test_bulk_move_counts_noop_items_as_moved(db_session, session_factory, seeded):
    ids = await _applications(db_session, seeded, stage="Offer")

    result = await bulk_move(
        session_factory, application_ids=ids, target_stage_id=seeded.stages["Offer"].stage_id
    )

    assert result.moved_count == 3
    assert result.failures == []


async def test_bulk_move_reports_unknown_ids_in_input_order(db_session, session_factory, seeded):
    ids = await _applications(db_session, seeded)
    offer_id = seeded.stages["Offer"].stage_id

    result = await bulk_move(
        session_factory, application_ids=ids + [9999], target_stage_id=offer_id
    )

    assert result.moved_count == 3
    assert [failure.application_id for failure in result.failures] == [9999]
    assert result.failures[0].candidate_name is None


async def test_bulk_move_requires_ids(session_factory):
    with pytest.raises(ValidationError):
        await bulk_move(session_factory, application_ids=[], target_stage_id=1)


async def test_bulk_move_constraint_failure_is_reported_as_conflict(db_session, session_factory, seeded, monkeypatch):
    ids = await _applications(db_session, seeded)

    async def _fail(*args, **kwargs):
        raise IntegrityError("UPDATE job_application", {}, Exception("foreign key"))

    monkeypatch.setattr(bulk_move_service, "move_to_stage", _fail)

    result = await bulk_move(session_factory, application_ids=ids[:1], target_stage_id=seeded.stages["Offer"].stage_id)

    assert result.moved_count == 0
    assert result.failures[0].error_code == "conflict"
    assert result.failures[0].candidate_name == "Candidate 1"


async def test_bulk_move_runs_items_in_parallel_sessions(file_session_factory, file_seeded):
    ids = []
    async with file_session_factory() as session:
        for candidate in file_seeded.candidates:
            result = await add_application(
                session,
                job_id=file_seeded.job.job_id,
                candidate_id=candidate.candidate_id,
                stage_id=file_seeded.stages["Interview"].stage_id,
            )
            ids.append(result.application.application_id)
        await session.commit()
    offer_id = file_seeded.stages["Offer"].stage_id

    result = await bulk_move(
        file_session_factory,
        application_ids=[ids[0], 9999, *ids[1:], 9998],
        target_stage_id=offer_id,
        max_concurrency=3,
    )

    assert result.moved_count == len(ids)
    assert [failure.application_id for failure in result.failures] == [9999, 9998]
    assert await _current_stage_ids(file_session_factory, ids) == {application_id: offer_id for application_id in ids}
    async with file_session_factory() as session:
        open_entries = (
            await session.execute(
                select(StageHistory.application_id, StageHistory.stage_id).where(
                    StageHistory.application_id.in_(ids), StageHistory.exited_at.is_(None)
                )
            )
        ).all()
    assert sorted(open_entries) == [(application_id, offer_id) for application_id in sorted(ids)]
