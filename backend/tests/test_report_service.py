# Overview: Golden-output coverage for the plain-text stock opname report.

from datetime import datetime

from stockledger.services.opname_schemas import OpnameLine, OpnameSession
from stockledger.services.report_service import RULE_WIDTH, render_report


def _session():
    return OpnameSession(
        id="s1",
        device_id="dev-1",
        mode="partial",
        last_view="partial_so",
        started_at=datetime(2026, 1, 5, 9, 30, 0),
        lines=[
            OpnameLine(code="A01", name="Apel", category="Buah", system_quantity=10,
                       counted_quantity=8, unit_price_cents=500),
            OpnameLine(code="M01", name="Teh Botol", category=None, system_quantity=3,
                       counted_quantity=4, unit_price_cents=300),
            OpnameLine(code="A02", name="Anggur", category="Buah", system_quantity=5,
                       counted_quantity=5, unit_price_cents=900),
        ],
    )


class TestRenderReport:
    def test_layout(self, app):
        lines = render_report(_session()).split("\n")

        assert lines[:4] == [
            "STOCK OPNAME REPORT",
            "Session: s1",
            "Mode: partial",
            "Started: 2026-01-05T09:30:00Z",
        ]
        assert lines[4] == "=" * RULE_WIDTH
        assert lines[5].split() == ["CODE", "NAME", "SYSTEM", "COUNTED", "DIFF"]
        assert lines[6] == "-" * RULE_WIDTH

        assert lines[7] == "[Buah]"
        assert lines[8] == "A02" + " " * 8 + "Anggur" + " " * 30 + "5" + " " * 8 + "5" + " " * 8 + "0"
        assert lines[9].split() == ["A01", "Apel", "10", "8", "-2"]
        assert lines[10] == "[Uncategorized]"
        assert lines[11].split() == ["M01", "Teh", "Botol", "3", "4", "+1"]
        assert all(len(row) == RULE_WIDTH for row in lines[8:10] + lines[11:12])

        assert lines[12:] == [
            "-" * RULE_WIDTH,
            "Total items: 3",
            "Matching: 1",
            "Mismatching: 2 (surplus 1, deficit 1)",
            "Net difference: -1",
            "Net value difference (cents): -700",
            "",
        ]

    def test_only_mismatched_keeps_full_summary(self, app):
        text = render_report(_session(), only_mismatched=True)
        assert "Anggur" not in text
        assert "Apel" in text
        assert "Total items: 3\n" in text

    def test_long_names_are_truncated(self, app):
        session = _session()
        session.lines = [OpnameLine(code="L01", name="X" * 40, category="Buah", system_quantity=1)]
        row = render_report(session).split("\n")[8]
        assert len(row) == RULE_WIDTH
        assert "X" * 27 + "~" in row
