import pytest
from datetime import datetime, timedelta
from freezegun import freeze_time

from bidding.lifecycle import InvalidTransition, check_transition, effective_status, is_open, time_remaining
from bidding.models import AuctionStatus


END = datetime(2026, 3, 1, 12, 0, 0)


@freeze_time("2026-03-01 11:00:00")
def test_active_before_end_time(make_auction):
    auction = make_auction(end_time=END)
    assert effective_status(auction) == AuctionStatus.ACTIVE
    assert is_open(auction)


@freeze_time("2026-03-01 12:00:01")
def test_active_auction_past_end_time_is_closed(make_auction):
    """Stored status still reads ACTIVE but the auction has effectively closed."""
    auction = make_auction(end_time=END)
    assert auction.status == AuctionStatus.ACTIVE
    assert effective_status(auction) == AuctionStatus.CLOSED


@freeze_time("2026-03-01 12:00:00")
def test_end_time_itself_is_closed(make_auction):
    assert effective_status(make_auction(end_time=END)) == AuctionStatus.CLOSED


@freeze_time("2026-03-01 11:00:00")
def test_terminal_stored_status_is_kept(make_auction):
    assert effective_status(make_auction(end_time=END, status=AuctionStatus.CANCELLED)) == AuctionStatus.CANCELLED
    assert effective_status(make_auction(end_time=END, status=AuctionStatus.CLOSED)) == AuctionStatus.CLOSED


def test_explicit_now_is_used(make_auction):
    auction = make_auction(end_time=END)
    assert effective_status(auction, now=END - timedelta(seconds=1)) == AuctionStatus.ACTIVE
    assert effective_status(auction, now=END + timedelta(seconds=1)) == AuctionStatus.CLOSED


def test_allowed_transitions():
    check_transition(AuctionStatus.ACTIVE, AuctionStatus.CLOSED)
    check_transition(AuctionStatus.ACTIVE, AuctionStatus.CANCELLED)
    check_transition(AuctionStatus.CLOSED, AuctionStatus.CLOSED)


@pytest.mark.parametrize("current", [AuctionStatus.CLOSED, AuctionStatus.CANCELLED])
@pytest.mark.parametrize("target", [AuctionStatus.ACTIVE, AuctionStatus.CANCELLED, AuctionStatus.CLOSED])
def test_terminal_states_have_no_way_out(current, target):
    if current == target:
        return
    with pytest.raises(InvalidTransition):
        check_transition(current, target)


@freeze_time("2026-03-01 10:30:00")
def test_time_remaining(make_auction):
    assert time_remaining(make_auction(end_time=END)) == timedelta(hours=1, minutes=30)
    assert time_remaining(make_auction(end_time=END, status=AuctionStatus.CANCELLED)) == timedelta(0)


@freeze_time("2026-03-02 00:00:00")
def test_time_remaining_after_end(make_auction):
    assert time_remaining(make_auction(end_time=END)) == timedelta(0)
