# Overview: Pytest coverage for persisted stock opname drafts.

"""
Session Store Tests

A draft reloaded after the app was killed must be exactly the draft that
was last saved, and a committed or cancelled session must never come back.
"""

import pytest

from stockledger.errors import ActiveSessionExists, SessionNotFound, ValidationError
from stockledger.services import opname_service, session_service
from stockledger.services.opname_schemas import OpnameLine, VIEW_EDIT


class TestSessionPersistence:
    def test_empty_session_round_trips(self, db_session):
        session = opname_service.start_session("partial", device_id="dev-1", actor="tester")

        loaded = session_service.load_active_session("dev-1")
        assert loaded.id == session.id
        assert loaded.mode == "partial"
        assert loaded.last_view == "partial_so"
        assert loaded.lines == []

    def test_lines_and_last_view_reload_verbatim(self, db_session, make_item):
        make_item("Teh", category="Minuman", code="MN01", quantity=5, price_cents=300)
        session = opname_service.start_session("partial", device_id="dev-1")
        opname_service.add_line_by_scan(session, "MN01", 0)
        session.lines.append(OpnameLine(code="ZZ01", name="Manual", system_quantity=2, counted_quantity=7))
        opname_service.set_last_view(session, VIEW_EDIT)
        session_service.save_draft(session)

        loaded = session_service.load_active_session("dev-1")
        assert loaded.last_view == VIEW_EDIT
        assert loaded.lines == session.lines
        # Counted zero is stored as zero, not dropped
        assert loaded.find_line("MN01").counted_quantity == 0
        assert loaded.find_line("MN01").system_quantity == 5

    def test_save_draft_is_idempotent(self, db_session):
        session = opname_service.start_session("partial", device_id="dev-1")
        session.lines.append(OpnameLine(code="A", name="A", system_quantity=1, counted_quantity=1))

        session_service.save_draft(session)
        session_service.save_draft(session)

        assert session_service.load_active_session("dev-1").lines == session.lines

    def test_last_write_wins(self, db_session):
        session = opname_service.start_session("partial", device_id="dev-1")
        session.lines.append(OpnameLine(code="A", name="A", system_quantity=1, counted_quantity=1))
        session_service.save_draft(session)

        session.lines[0].counted_quantity = 9
        session_service.save_draft(session)

        assert session_service.load_active_session("dev-1").lines[0].counted_quantity == 9

    def test_duplicate_lines_are_rejected(self, db_session):
        session = opname_service.start_session("partial", device_id="dev-1")
        session.lines.append(OpnameLine(code="A", name="A", system_quantity=1))
        session.lines.append(OpnameLine(code="A", name="A", system_quantity=1))
        with pytest.raises(ValidationError):
            session_service.save_draft(session)

    def test_no_session_on_fresh_device(self, db_session):
        assert session_service.load_active_session("dev-new") is None


class TestOneSessionPerDevice:
    def test_second_start_on_same_device_is_refused(self, db_session):
        first = opname_service.start_session("partial", device_id="dev-1")
        with pytest.raises(ActiveSessionExists) as exc:
            opname_service.start_session("grand", device_id="dev-1")
        assert exc.value.session_id == first.id

    def test_other_devices_are_independent(self, db_session):
        a = opname_service.start_session("partial", device_id="dev-1")
        b = opname_service.start_session("partial", device_id="dev-2")
        assert session_service.load_active_session("dev-1").id == a.id
        assert session_service.load_active_session("dev-2").id == b.id


class TestClearSession:
    def test_cleared_session_is_not_resurrected(self, db_session):
        session = opname_service.start_session("partial", device_id="dev-1")
        assert session_service.clear_session(session.id) is True

        with pytest.raises(SessionNotFound):
            session_service.save_draft(session)
        assert session_service.load_active_session("dev-1") is None

    def test_clear_twice(self, db_session):
        session = opname_service.start_session("partial", device_id="dev-1")
        session_service.clear_session(session.id)
        assert session_service.clear_session(session.id) is False

    def test_get_missing_session(self, db_session):
        with pytest.raises(SessionNotFound):
            session_service.get_session("missing")
