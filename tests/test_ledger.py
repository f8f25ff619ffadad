import uuid

import pytest

from marketstall.database import SessionLocal
from marketstall.errors import NotFound, StallUnavailable
from marketstall.services.ledger import StallLedger
from tests._db import create_stall, get_stall, run


ledger = StallLedger()


def _in_tx(method: str, *args, **kwargs):
    async def _run():
        async with SessionLocal() as session:
            async with session.begin():
                return await getattr(ledger, method)(session, *args, **kwargs)

    return run(_run())


def test_is_available_reflects_flag_and_status():
    assert _in_tx("is_available", create_stall()) is True
    assert _in_tx("is_available", create_stall(is_available=False)) is False
    assert _in_tx("is_available", create_stall(status="inactive")) is False


def test_try_reserve_flips_once():
    stall_id = create_stall()

    assert _in_tx("try_reserve", stall_id) is True
    assert _in_tx("try_reserve", stall_id) is False
    assert get_stall(stall_id).is_available is False


def test_try_reserve_records_session_reference():
    stall_id = create_stall(allocation_mode="auction")
    session_id = uuid.uuid4()

    _in_tx("try_reserve", stall_id, session_id=session_id)

    assert get_stall(stall_id).current_session_id == session_id


def test_reserve_or_raise_distinguishes_missing_from_taken():
    with pytest.raises(NotFound):
        _in_tx("reserve_or_raise", 424242)

    taken = create_stall(is_available=False)
    with pytest.raises(StallUnavailable) as exc:
        _in_tx("reserve_or_raise", taken)
    assert exc.value.stall_id == taken


def test_release_restores_availability_and_clears_session():
    stall_id = create_stall(allocation_mode="raffle")
    _in_tx("try_reserve", stall_id, session_id=uuid.uuid4())

    _in_tx("release", stall_id)

    stall = get_stall(stall_id)
    assert stall.is_available is True
    assert stall.current_session_id is None


def test_release_leaves_catalog_status_alone():
    stall_id = create_stall(status="inactive", is_available=False)

    _in_tx("release", stall_id)

    stall = get_stall(stall_id)
    assert stall.status == "inactive"
    assert _in_tx("is_available", stall_id) is False


def test_detach_session_keeps_stall_allocated():
    stall_id = create_stall(allocation_mode="auction")
    _in_tx("try_reserve", stall_id, session_id=uuid.uuid4())

    _in_tx("detach_session", stall_id)

    stall = get_stall(stall_id)
    assert stall.is_available is False
    assert stall.current_session_id is None
