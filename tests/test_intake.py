import asyncio
from datetime import timedelta

import pydantic
import pytest
from sqlalchemy.exc import OperationalError

from marketstall.database import SessionLocal
from marketstall.errors import EligibilityDenied, NotFound, PersistenceFailure, StallUnavailable, ValidationError
from marketstall.models import Applicant, Application, BusinessInformation, OtherInformation, Spouse
from marketstall.schemas.applicant import CombinedStallApplicationCreate, IntakeCreate
from marketstall.services.intake import IntakeService
from marketstall.services.ledger import StallLedger
from tests._db import (
    NOW,
    applications_for_stall,
    count_rows,
    create_applicant,
    create_application,
    create_stall,
    get_stall,
    intake_payload,
    run,
)


def _submit(payload: dict, *, service: IntakeService | None = None, combined: bool = False, now=NOW):
    service = service or IntakeService()

    async def _run():
        async with SessionLocal() as session:
            if combined:
                return await service.submit_combined_stall_application(
                    session, CombinedStallApplicationCreate.model_validate(payload), now=now
                )
            return await service.submit_intake(session, IntakeCreate.model_validate(payload), now=now)

    return run(_run())


def test_intake_without_stall_creates_applicant_only():
    result = _submit(intake_payload(email="solo@example.com"))

    assert result.application_id is None
    assert result.eligibility == "allow"
    assert result.warning is None
    assert count_rows(Applicant) == 1
    assert count_rows(BusinessInformation) == 1
    assert count_rows(OtherInformation) == 1
    assert count_rows(Application) == 0


def test_intake_with_stall_creates_pending_application_and_reserves_stall():
    stall_id = create_stall()

    result = _submit(intake_payload(email="with-stall@example.com", stall_id=stall_id))

    assert result.application_id is not None
    apps = applications_for_stall(stall_id)
    assert [(a.id, a.status, a.source) for a in apps] == [(result.application_id, "pending", "intake")]
    assert get_stall(stall_id).is_available is False


def test_combined_application_uses_one_day_cooldown():
    stall_old = create_stall()
    stall_new = create_stall()
    prior = create_applicant(email="quick@example.com", created_at=NOW - timedelta(days=2))
    create_application(applicant_id=prior, stall_id=stall_old, status="pending", created_at=NOW - timedelta(days=2))

    result = _submit(intake_payload(email="quick@example.com", stall_id=stall_new), combined=True)

    assert result.eligibility == "allow_with_warning"
    assert result.warning
    assert get_stall(stall_new).is_available is False


def test_general_intake_denies_within_seven_days_of_pending():
    stall = create_stall()
    prior = create_applicant(email="again@example.com", created_at=NOW - timedelta(days=2))
    create_application(applicant_id=prior, stall_id=stall, status="pending", created_at=NOW - timedelta(days=2))

    with pytest.raises(EligibilityDenied) as exc:
        _submit(intake_payload(email="again@example.com"))

    assert exc.value.retry_after_days == 5
    assert count_rows(Applicant) == 1


def test_missing_required_fields_are_reported_together():
    payload = intake_payload(email="")
    payload["personal"]["full_name"] = "   "

    with pytest.raises(ValidationError) as exc:
        _submit(payload)

    assert set(exc.value.fields) == {"personal.full_name", "other.email_address"}
    assert count_rows(Applicant) == 0


@pytest.mark.parametrize("email", ["not-an-email", "@", "not an email@", "a@b@c", "user@", "user@@example.com"])
def test_malformed_email_is_rejected(email):
    with pytest.raises(pydantic.ValidationError) as exc:
        _submit(intake_payload(email=email))

    assert [e["loc"] for e in exc.value.errors()] == [("other", "email_address")]
    assert count_rows(Applicant) == 0


def test_spouse_record_only_for_married_applicants():
    single = intake_payload(email="single@example.com")
    single["spouse"] = {"full_name": "Pedro Santos"}
    _submit(single)
    assert count_rows(Spouse) == 0

    married = intake_payload(email="married@example.com")
    married["personal"]["civil_status"] = "Married"
    married["spouse"] = {"full_name": "Pedro Santos", "occupation": "Driver"}
    _submit(married)
    assert count_rows(Spouse) == 1


def test_blank_business_section_is_not_stored():
    payload = intake_payload(email="nobiz@example.com")
    payload["business"] = {"nature_of_business": "", "capitalization": " "}

    _submit(payload)

    assert count_rows(BusinessInformation) == 0


def test_unavailable_stall_rejects_whole_intake():
    stall_id = create_stall(is_available=False)

    with pytest.raises(StallUnavailable):
        _submit(intake_payload(email="late@example.com", stall_id=stall_id))

    assert count_rows(Applicant) == 0
    assert count_rows(OtherInformation) == 0


def test_inactive_stall_is_unavailable():
    stall_id = create_stall(status="maintenance")

    with pytest.raises(StallUnavailable):
        _submit(intake_payload(email="inactive@example.com", stall_id=stall_id))


def test_raffle_stall_cannot_be_applied_for_directly():
    stall_id = create_stall(allocation_mode="raffle")

    with pytest.raises(StallUnavailable) as exc:
        _submit(intake_payload(email="raffle@example.com", stall_id=stall_id))

    assert "raffle" in exc.value.message
    assert get_stall(stall_id).is_available is True


def test_unknown_stall_is_not_found():
    with pytest.raises(NotFound):
        _submit(intake_payload(email="ghost@example.com", stall_id=99999))

    assert count_rows(Applicant) == 0


class _BrokenLedger(StallLedger):
    """Reserves the stall, then fails the way a dropped connection would."""

    async def reserve_or_raise(self, session, stall_id, *, session_id=None):
        await super().reserve_or_raise(session, stall_id, session_id=session_id)
        raise OperationalError("INSERT INTO applications", {}, Exception("disk I/O error"))


def test_storage_failure_rolls_back_everything():
    stall_id = create_stall()

    with pytest.raises(PersistenceFailure):
        _submit(
            intake_payload(email="broken@example.com", stall_id=stall_id),
            service=IntakeService(ledger=_BrokenLedger()),
        )

    assert count_rows(Applicant) == 0
    assert count_rows(BusinessInformation) == 0
    assert count_rows(OtherInformation) == 0
    assert count_rows(Application) == 0
    assert get_stall(stall_id).is_available is True


def test_failure_writing_sub_record_leaves_no_applicant(monkeypatch):
    from marketstall.crud import applicant as applicant_crud

    async def _fail(*args, **kwargs):
        raise OperationalError("INSERT INTO other_information", {}, Exception("connection reset"))

    monkeypatch.setattr(applicant_crud, "insert_other", _fail)

    with pytest.raises(PersistenceFailure):
        _submit(intake_payload(email="partial@example.com"))

    assert count_rows(Applicant) == 0
    assert count_rows(BusinessInformation) == 0


def test_concurrent_applications_for_same_stall_have_one_winner():
    stall_id = create_stall()
    service = IntakeService()

    async def _one(email: str):
        async with SessionLocal() as session:
            return await service.submit_intake(
                session, IntakeCreate.model_validate(intake_payload(email=email, stall_id=stall_id)), now=NOW
            )

    async def _race():
        return await asyncio.gather(
            _one("first@example.com"),
            _one("second@example.com"),
            return_exceptions=True,
        )

    results = run(_race())

    winners = [r for r in results if not isinstance(r, BaseException)]
    losers = [r for r in results if isinstance(r, BaseException)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], StallUnavailable)

    apps = applications_for_stall(stall_id)
    assert [a.id for a in apps] == [winners[0].application_id]
    # The losing submission left nothing behind.
    assert count_rows(Applicant) == 1


def test_intake_notifies_applicant_after_commit(monkeypatch):
    from marketstall.worker import dispatch

    sent = []
    monkeypatch.setattr(
        dispatch,
        "enqueue_notification",
        lambda *, email, outcome, context: sent.append((email, outcome)),
    )

    _submit(intake_payload(email="notify@example.com"))

    assert sent == [("notify@example.com", "submitted")]


def test_failed_intake_sends_no_notification(monkeypatch):
    from marketstall.worker import dispatch

    sent = []
    monkeypatch.setattr(dispatch, "enqueue_notification", lambda **kw: sent.append(kw))
    stall_id = create_stall(is_available=False)

    with pytest.raises(StallUnavailable):
        _submit(intake_payload(email="quiet@example.com", stall_id=stall_id))

    assert sent == []
