import pytest

from utils.cancellation_utils import (
    CancelledError,
    cancellation_flags,
    check_cancellation,
    clear_flag,
    initialize_flag,
    set_cancel_flag,
)


def test_unflagged_session_passes():
    initialize_flag("s1")
    check_cancellation("s1")
    check_cancellation(None)


def test_set_flag_cancels_session():
    initialize_flag("s1")
    assert set_cancel_flag("s1") is True
    with pytest.raises(CancelledError):
        check_cancellation("s1")


def test_unknown_session_cannot_be_cancelled():
    assert set_cancel_flag("missing") is False
    assert "missing" not in cancellation_flags


def test_initialize_resets_and_clear_removes():
    initialize_flag("s1")
    set_cancel_flag("s1")
    initialize_flag("s1")
    check_cancellation("s1")
    clear_flag("s1")
    assert "s1" not in cancellation_flags
