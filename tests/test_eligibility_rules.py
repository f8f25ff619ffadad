import uuid
from datetime import timedelta

import pytest

from marketstall.database import SessionLocal
from marketstall.errors import EligibilityDenied
from marketstall.services.eligibility import PriorRecord, Verdict, check_eligibility, evaluate
from tests._db import NOW, create_applicant, create_application, create_stall, run


SEVEN_DAYS = timedelta(days=7)
ONE_DAY = timedelta(days=1)


def _prior(status, *, age: timedelta | None) -> PriorRecord:
    return PriorRecord(
        applicant_id=uuid.uuid4(),
        applicant_created_at=NOW - (age or timedelta(0)),
        application_status=status,
        application_created_at=(NOW - age) if age is not None else None,
    )


def test_no_history_is_allowed():
    assert evaluate(None, cooldown=SEVEN_DAYS, now=NOW).verdict is Verdict.ALLOW


def test_applicant_without_application_is_allowed():
    result = evaluate(_prior(None, age=None), cooldown=SEVEN_DAYS, now=NOW)
    assert result.verdict is Verdict.ALLOW


def test_approved_application_denies_regardless_of_age():
    result = evaluate(_prior("approved", age=timedelta(days=400)), cooldown=SEVEN_DAYS, now=NOW)
    assert result.verdict is Verdict.DENY
    assert result.retry_after_days is None
    assert "approved" in result.reason


def test_declined_application_allows_immediately():
    result = evaluate(_prior("declined", age=timedelta(minutes=5)), cooldown=SEVEN_DAYS, now=NOW)
    assert result.verdict is Verdict.ALLOW


def test_pending_exactly_at_cooldown_is_allowed_with_warning():
    result = evaluate(_prior("pending", age=SEVEN_DAYS), cooldown=SEVEN_DAYS, now=NOW)
    assert result.verdict is Verdict.ALLOW_WITH_WARNING
    assert result.allowed
    assert result.reason


def test_pending_one_second_short_of_cooldown_is_denied():
    result = evaluate(_prior("pending", age=SEVEN_DAYS - timedelta(seconds=1)), cooldown=SEVEN_DAYS, now=NOW)
    assert result.verdict is Verdict.DENY
    assert result.retry_after_days == 1


def test_pending_denial_reports_remaining_days_rounded_up():
    result = evaluate(_prior("pending", age=timedelta(days=2, hours=3)), cooldown=SEVEN_DAYS, now=NOW)
    assert result.verdict is Verdict.DENY
    # 4 days 21 hours remain
    assert result.retry_after_days == 5


def test_combined_cooldown_is_one_day():
    denied = evaluate(_prior("pending", age=timedelta(hours=23)), cooldown=ONE_DAY, now=NOW)
    allowed = evaluate(_prior("pending", age=ONE_DAY), cooldown=ONE_DAY, now=NOW)

    assert denied.verdict is Verdict.DENY
    assert denied.retry_after_days == 1
    assert allowed.verdict is Verdict.ALLOW_WITH_WARNING


def test_raise_for_denial_carries_retry_hint():
    result = evaluate(_prior("pending", age=timedelta(days=3)), cooldown=SEVEN_DAYS, now=NOW)

    with pytest.raises(EligibilityDenied) as exc:
        result.raise_for_denial()

    assert exc.value.retry_after_days == 4


def _check(email: str, *, cooldown=SEVEN_DAYS, now=NOW):
    async def _run():
        async with SessionLocal() as session:
            return await check_eligibility(session, email=email, cooldown=cooldown, now=now)

    return run(_run())


def test_newest_applicant_for_email_is_authoritative():
    stall_a = create_stall()
    stall_b = create_stall()

    older = create_applicant(email="dup@example.com", created_at=NOW - timedelta(days=60))
    create_application(applicant_id=older, stall_id=stall_a, status="approved", created_at=NOW - timedelta(days=60))

    newer = create_applicant(email="dup@example.com", created_at=NOW - timedelta(days=10))
    create_application(applicant_id=newer, stall_id=stall_b, status="declined", created_at=NOW - timedelta(days=10))

    assert _check("dup@example.com").verdict is Verdict.ALLOW


def test_latest_application_of_the_applicant_decides():
    stall_a = create_stall()
    stall_b = create_stall()
    applicant = create_applicant(email="two@example.com", created_at=NOW - timedelta(days=20))
    create_application(applicant_id=applicant, stall_id=stall_a, status="declined", created_at=NOW - timedelta(days=20))
    create_application(applicant_id=applicant, stall_id=stall_b, status="pending", created_at=NOW - timedelta(days=1))

    result = _check("two@example.com")
    assert result.verdict is Verdict.DENY
    assert result.retry_after_days == 6


def test_email_lookup_ignores_case_and_whitespace():
    stall = create_stall()
    applicant = create_applicant(email="Case@Example.com")
    create_application(applicant_id=applicant, stall_id=stall, status="approved")

    assert _check("  case@example.COM ").verdict is Verdict.DENY


def test_unknown_email_is_allowed():
    assert _check("nobody@example.com").verdict is Verdict.ALLOW
