import os
import sys
from datetime import datetime, timedelta, timezone

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from models.rfp import RfpStatus
from repositories import rfp_repo
from services.dispatch_tracker import DispatchTracker
from services.errors import NotFoundError

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


class FixedClock:
    def __init__(self, moment):
        self.moment = moment

    def __call__(self):
        return self.moment


@pytest.fixture
def draft_rfp(sqlite_db):
    rfp_repo.create_rfp(title="Laptops", description="laptops", structured_terms=None, rfp_id="R1")
    return "R1"


def test_first_dispatch_advances_draft(draft_rfp):
    tracker = DispatchTracker(clock=FixedClock(T0))

    recorded = tracker.record_dispatch("R1", ["V1", "V2", "V1"])

    assert recorded == ["V1", "V2"]
    rfp = rfp_repo.get_rfp("R1")
    assert rfp.status == RfpStatus.DISPATCHED
    assert [(d.vendor_id, d.sent_at) for d in rfp.dispatches] == [("V1", T0), ("V2", T0)]


def test_redispatch_updates_timestamp_without_new_entry(draft_rfp):
    clock = FixedClock(T0)
    tracker = DispatchTracker(clock=clock)
    tracker.record_dispatch("R1", ["V1"])

    clock.moment = T0 + timedelta(hours=3)
    tracker.record_dispatch("R1", ["V1"])

    dispatches = rfp_repo.get_rfp("R1").dispatches
    assert len(dispatches) == 1
    assert dispatches[0].sent_at == T0 + timedelta(hours=3)


def test_dispatch_does_not_move_status_backwards(draft_rfp):
    rfp_repo.advance_status("R1", RfpStatus.COLLECTING_RESPONSES)

    DispatchTracker(clock=FixedClock(T0)).record_dispatch("R1", ["V3"])

    assert rfp_repo.get_rfp("R1").status == RfpStatus.COLLECTING_RESPONSES


def test_empty_vendor_list_keeps_draft(draft_rfp):
    assert DispatchTracker().record_dispatch("R1", []) == []
    assert rfp_repo.get_rfp("R1").status == RfpStatus.DRAFT


def test_unknown_rfp(sqlite_db):
    with pytest.raises(NotFoundError):
        DispatchTracker().record_dispatch("missing", ["V1"])


def test_status_only_moves_forward(draft_rfp):
    assert rfp_repo.advance_status("R1", RfpStatus.CLOSED)
    assert not rfp_repo.advance_status("R1", RfpStatus.DISPATCHED)
    assert not rfp_repo.advance_status("R1", RfpStatus.CLOSED)
    assert rfp_repo.get_rfp("R1").status == RfpStatus.CLOSED


def test_advance_restricted_to_allowed_statuses(draft_rfp):
    assert not rfp_repo.advance_status(
        "R1", RfpStatus.COLLECTING_RESPONSES, from_statuses=(RfpStatus.DISPATCHED,)
    )
    assert rfp_repo.get_rfp("R1").status == RfpStatus.DRAFT

    rfp_repo.advance_status("R1", RfpStatus.DISPATCHED)

    assert rfp_repo.advance_status(
        "R1", RfpStatus.COLLECTING_RESPONSES, from_statuses=(RfpStatus.DISPATCHED,)
    )
    assert rfp_repo.get_rfp("R1").status == RfpStatus.COLLECTING_RESPONSES


def test_list_rfps_carries_dispatches_newest_first(sqlite_db):
    rfp_repo.create_rfp(title="Old", description="a", structured_terms=None, rfp_id="R1", now=T0)
    rfp_repo.create_rfp(
        title="New", description="b", structured_terms=None, rfp_id="R2", now=T0 + timedelta(days=1)
    )
    DispatchTracker(clock=FixedClock(T0)).record_dispatch("R1", ["V2", "V1"])

    rfps = rfp_repo.list_rfps()

    assert [rfp.id for rfp in rfps] == ["R2", "R1"]
    assert rfps[0].dispatches == []
    assert [d.vendor_id for d in rfps[1].dispatches] == ["V1", "V2"]
