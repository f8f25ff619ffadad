import uuid
from datetime import timedelta

from marketstall.database import SessionLocal
from marketstall.models import ActivityLog, Applicant, Application, BusinessInformation, OtherInformation
from marketstall.services.sessions import SessionManager
from marketstall.services.sweeps import _purge_applicant, run_cleanup_sweep, run_expiry_sweep
from tests._db import (
    NOW,
    applications_for_stall,
    count_rows,
    create_applicant,
    create_application,
    create_stall,
    get_applicant,
    get_session,
    run,
)


def _open(stall_id: int, mode: str, *, deadline):
    async def _run():
        async with SessionLocal() as session:
            return await SessionManager().open_session(
                session, stall_id=stall_id, mode=mode, deadline=deadline, now=NOW - timedelta(days=2)
            )

    return run(_run())


def _join(session_id, applicant_id):
    async def _run():
        async with SessionLocal() as session:
            return await SessionManager().join_raffle(session, session_id, applicant_id, now=NOW - timedelta(days=1))

    return run(_run())


# -- expiry -------------------------------------------------------------------


def test_expiry_sweep_closes_only_due_sessions():
    due_stall = create_stall(allocation_mode="raffle")
    empty_stall = create_stall(allocation_mode="raffle")
    later_stall = create_stall(allocation_mode="raffle")

    due = _open(due_stall, "raffle", deadline=NOW - timedelta(hours=1))
    empty = _open(empty_stall, "raffle", deadline=NOW - timedelta(minutes=5))
    later = _open(later_stall, "raffle", deadline=NOW + timedelta(hours=1))
    applicant = create_applicant(email="sweeper@example.com")
    _join(due.id, applicant)

    report = run(run_expiry_sweep(now=NOW))

    assert report.kind == "session_expiry"
    assert report.processed == 2
    assert report.failed == 0
    assert {i.outcome for i in report.items} == {"won", "no_entries"}

    assert get_session(due.id).status == "closed_won"
    assert get_session(empty.id).status == "cancelled"
    assert get_session(later.id).status == "open"
    assert [a.applicant_id for a in applications_for_stall(due_stall)] == [applicant]


def test_deadline_exactly_now_is_due():
    stall_id = create_stall(allocation_mode="raffle")
    obj = _open(stall_id, "raffle", deadline=NOW)

    report = run(run_expiry_sweep(now=NOW))

    assert [i.entity_id for i in report.items] == [str(obj.id)]


class _FlakyManager(SessionManager):
    def __init__(self, broken_id):
        super().__init__()
        self._broken_id = broken_id

    async def close_expired_session(self, session, session_id, *, now=None):
        if session_id == self._broken_id:
            raise RuntimeError("lost connection mid-close")
        return await super().close_expired_session(session, session_id, now=now)


def test_expiry_sweep_continues_past_a_failing_session():
    broken = _open(create_stall(allocation_mode="raffle"), "raffle", deadline=NOW - timedelta(hours=2))
    healthy = _open(create_stall(allocation_mode="raffle"), "raffle", deadline=NOW - timedelta(hours=1))

    report = run(run_expiry_sweep(now=NOW, manager=_FlakyManager(broken.id)))

    outcomes = {i.entity_id: (i.outcome, i.error) for i in report.items}
    assert outcomes[str(broken.id)] == ("failed", "RuntimeError")
    assert outcomes[str(healthy.id)] == ("no_entries", None)
    assert report.failed == 1
    assert report.succeeded == 1
    assert get_session(broken.id).status == "open"


class _CancelledFirstManager(SessionManager):
    """Cancels the session in its own transaction before the expiry close runs."""

    async def close_expired_session(self, session, session_id, *, now=None):
        async with SessionLocal() as other:
            await SessionManager().cancel_session(other, session_id, reason="manual", now=now)
        return await super().close_expired_session(session, session_id, now=now)


def test_expiry_sweep_rerun_is_a_no_op():
    stall_id = create_stall(allocation_mode="raffle")
    obj = _open(stall_id, "raffle", deadline=NOW - timedelta(hours=1))
    _join(obj.id, create_applicant(email="twice@example.com"))

    first = run(run_expiry_sweep(now=NOW))
    second = run(run_expiry_sweep(now=NOW))

    assert [i.outcome for i in first.items] == ["won"]
    assert second.processed == 0
    assert second.failed == 0
    assert len(applications_for_stall(stall_id)) == 1
    assert get_session(obj.id).status == "closed_won"


def test_session_closed_after_listing_is_already_closed():
    obj = _open(create_stall(allocation_mode="raffle"), "raffle", deadline=NOW - timedelta(hours=1))

    report = run(run_expiry_sweep(now=NOW, manager=_CancelledFirstManager()))

    assert [(i.entity_id, i.outcome) for i in report.items] == [(str(obj.id), "already_closed")]
    assert report.failed == 0
    assert get_session(obj.id).status == "cancelled"
    assert get_session(obj.id).close_reason == "cancelled_by_operator"


# -- rejected purge -----------------------------------------------------------


def _declined(email: str, *, age: timedelta):
    stall_id = create_stall()
    applicant_id = create_applicant(email=email, created_at=NOW - age)
    create_application(applicant_id=applicant_id, stall_id=stall_id, status="declined", created_at=NOW - age)
    return applicant_id


def test_declined_forty_days_ago_is_purged():
    applicant_id = _declined("old@example.com", age=timedelta(days=40))

    report = run(run_cleanup_sweep(now=NOW, retention_days=30))

    assert [(i.entity_id, i.outcome) for i in report.items] == [(str(applicant_id), "purged")]
    assert get_applicant(applicant_id) is None
    assert count_rows(Application) == 0
    assert count_rows(OtherInformation) == 0


def test_retention_window_boundaries():
    inside = _declined("inside@example.com", age=timedelta(days=29, hours=23))
    exactly = _declined("exactly@example.com", age=timedelta(days=30))

    run(run_cleanup_sweep(now=NOW, retention_days=30))

    assert get_applicant(inside) is not None
    assert get_applicant(exactly) is None


def test_pending_and_approved_are_never_purged():
    stall_a = create_stall()
    stall_b = create_stall()
    pending = create_applicant(email="pending@example.com", created_at=NOW - timedelta(days=400))
    create_application(applicant_id=pending, stall_id=stall_a, status="pending", created_at=NOW - timedelta(days=400))
    approved = create_applicant(email="approved@example.com", created_at=NOW - timedelta(days=400))
    create_application(applicant_id=approved, stall_id=stall_b, status="approved", created_at=NOW - timedelta(days=400))

    report = run(run_cleanup_sweep(now=NOW, retention_days=30))

    assert report.processed == 0
    assert count_rows(Applicant) == 2


def test_applicant_with_a_live_application_is_kept():
    applicant_id = _declined("mixed@example.com", age=timedelta(days=45))
    create_application(applicant_id=applicant_id, stall_id=create_stall(), status="pending", created_at=NOW)

    report = run(run_cleanup_sweep(now=NOW, retention_days=30))

    assert [i.outcome for i in report.items] == ["skipped_live_application"]
    assert get_applicant(applicant_id) is not None
    assert count_rows(Application) == 2


def test_purge_removes_all_sub_records():
    applicant_id = _declined("subs@example.com", age=timedelta(days=31))

    async def _add_business():
        async with SessionLocal() as session:
            session.add(BusinessInformation(applicant_id=applicant_id, nature_of_business="Fish"))
            await session.commit()

    run(_add_business())

    run(run_cleanup_sweep(now=NOW, retention_days=30))

    assert count_rows(BusinessInformation) == 0


def test_cleanup_sweep_rerun_is_a_no_op():
    applicant_id = _declined("gone@example.com", age=timedelta(days=60))

    first = run(run_cleanup_sweep(now=NOW, retention_days=30))
    second = run(run_cleanup_sweep(now=NOW, retention_days=30))

    assert [i.outcome for i in first.items] == ["purged"]
    assert second.processed == 0
    assert second.failed == 0
    assert get_applicant(applicant_id) is None


def test_purging_a_missing_applicant_is_already_deleted():
    async def _purge():
        async with SessionLocal() as session:
            return await _purge_applicant(session, uuid.uuid4(), cutoff=NOW - timedelta(days=30))

    assert run(_purge()) == "already_deleted"


class _CountingFactory:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return SessionLocal()


def test_sweeps_write_activity_log_through_given_factory():
    _declined("logged@example.com", age=timedelta(days=60))
    _open(create_stall(allocation_mode="raffle"), "raffle", deadline=NOW - timedelta(hours=1))
    before = count_rows(ActivityLog)

    cleanup_factory = _CountingFactory()
    run(run_cleanup_sweep(now=NOW, retention_days=30, session_factory=cleanup_factory))
    expiry_factory = _CountingFactory()
    run(run_expiry_sweep(now=NOW, session_factory=expiry_factory))

    # candidate listing, the item transaction, then the activity log
    assert cleanup_factory.calls == 3
    assert expiry_factory.calls == 3
    assert count_rows(ActivityLog) == before + 2


def test_maintenance_endpoints_return_reports(client):
    _declined("via-api@example.com", age=timedelta(days=365))

    r = client.post("/api/v1/maintenance/cleanup-sweep")
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["kind"] == "rejected_purge"
    assert body["processed"] == 1
    assert body["items"][0]["outcome"] == "purged"

    r = client.post("/api/v1/maintenance/expiry-sweep")
    assert r.status_code == 200, r.text
    assert r.json() == {"kind": "session_expiry", "processed": 0, "succeeded": 0, "failed": 0, "items": []}
