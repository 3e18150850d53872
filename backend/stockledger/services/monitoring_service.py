# Overview: Service-layer operations for stock opname monitoring and escalation.

"""
Stock Opname Monitoring

WHY: A single discrepancy is noise; the same item coming up short count
after count is shrinkage (theft, breakage, mis-scans at the till). This
service keeps a per item, per day record of discrepancies and escalates
items that keep showing them.

RULES (record_session):
- Nonzero difference: so_count += 1, totals accumulate (value = difference
  x unit price), consecutive_so_count += 1
- Zero difference (counted and matched): consecutive_so_count resets to 0
- Items not counted in the session are not touched
- status is recomputed from MonitoringPolicy on every write

Monitoring is read-only with respect to the stock ledger.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from flask import current_app

from ..errors import ItemNotFound
from ..extensions import db
from ..models import OpnameMonitoringRecord
from .history_service import list_history

logger = logging.getLogger(__name__)

STATUS_NORMAL = "normal"
STATUS_WARNING = "warning"
STATUS_CRITICAL = "critical"
STATUSES = (STATUS_NORMAL, STATUS_WARNING, STATUS_CRITICAL)

TREND_FIRST_COUNT = "first_count"
TREND_FREQUENT_DEFICIT = "frequent_deficit"
TREND_FREQUENT_SURPLUS = "frequent_surplus"
TREND_RECOVERED_DEFICIT = "recovered_deficit"
TREND_RECOVERED_SURPLUS = "recovered_surplus"
TREND_PATTERN_CHANGE = "pattern_change"
TREND_STABLE = "stable"
TREND_RARE_DISCREPANCY = "rare_discrepancy"
TREND_RARE_DEFICIT = "rare_deficit"
TREND_RARE_SURPLUS = "rare_surplus"
TREND_NORMAL = "normal"

TRENDS_NEEDING_ATTENTION = {
    TREND_FIRST_COUNT,
    TREND_FREQUENT_DEFICIT,
    TREND_FREQUENT_SURPLUS,
    TREND_RECOVERED_DEFICIT,
    TREND_RECOVERED_SURPLUS,
    TREND_PATTERN_CHANGE,
}

# Streak length at which a run of same-sign differences counts as "frequent"
FREQUENT_STREAK = 3


@dataclass(frozen=True)
class MonitoringPolicy:
    warning_consecutive: int = 2
    critical_consecutive: int = 3
    warning_value_cents: int = 50_000
    critical_value_multiplier: int = 3

    @classmethod
    def from_config(cls, config) -> "MonitoringPolicy":
        return cls(
            warning_consecutive=config.get("SO_WARNING_CONSECUTIVE", cls.warning_consecutive),
            critical_consecutive=config.get("SO_CRITICAL_CONSECUTIVE", cls.critical_consecutive),
            warning_value_cents=config.get("SO_WARNING_VALUE_CENTS", cls.warning_value_cents),
            critical_value_multiplier=config.get(
                "SO_CRITICAL_VALUE_MULTIPLIER", cls.critical_value_multiplier
            ),
        )

    @property
    def critical_value_cents(self) -> int:
        return self.warning_value_cents * self.critical_value_multiplier

    def classify(self, consecutive_so_count: int, total_value_difference_cents: int) -> str:
        value = abs(total_value_difference_cents)
        if consecutive_so_count >= self.critical_consecutive or value > self.critical_value_cents:
            return STATUS_CRITICAL
        if consecutive_so_count >= self.warning_consecutive or value > self.warning_value_cents:
            return STATUS_WARNING
        return STATUS_NORMAL


@dataclass(frozen=True)
class ItemDifference:
    code: str
    name: str
    difference: int
    unit_price_cents: int = 0


def current_policy() -> MonitoringPolicy:
    return MonitoringPolicy.from_config(current_app.config)


def _latest_record(item_code: str) -> OpnameMonitoringRecord | None:
    return (
        db.session.query(OpnameMonitoringRecord)
        .filter_by(item_code=item_code)
        .order_by(OpnameMonitoringRecord.date.desc(), OpnameMonitoringRecord.id.desc())
        .first()
    )


def _record_for_day(item_code: str, item_name: str, day: date) -> OpnameMonitoringRecord:
    record = (
        db.session.query(OpnameMonitoringRecord)
        .filter_by(item_code=item_code, date=day)
        .first()
    )
    if record is None:
        record = OpnameMonitoringRecord(
            item_code=item_code,
            item_name=item_name,
            date=day,
            so_count=0,
            total_difference=0,
            total_value_difference_cents=0,
            consecutive_so_count=0,
            status=STATUS_NORMAL,
        )
        db.session.add(record)
    return record


def record_session(
    day: date,
    differences,
    policy: MonitoringPolicy | None = None,
) -> list[OpnameMonitoringRecord]:
    """
    Fold one committed session into the monitoring records.

    differences: iterable of objects with code, name, difference and
    unit_price_cents (ItemDifference or OpnameLine). Flushes; caller commits.
    """
    policy = policy or current_policy()
    updated = []

    for diff in differences:
        latest = _latest_record(diff.code)
        previous_consecutive = latest.consecutive_so_count if latest else 0

        if diff.difference == 0:
            if latest is None:
                # Never discrepant: nothing to reset
                continue
            record = _record_for_day(diff.code, diff.name, day)
            record.consecutive_so_count = 0
        else:
            record = _record_for_day(diff.code, diff.name, day)
            record.so_count += 1
            record.total_difference += diff.difference
            record.total_value_difference_cents += diff.difference * diff.unit_price_cents
            record.consecutive_so_count = previous_consecutive + 1

        record.item_name = diff.name
        previous_status = record.status
        record.status = policy.classify(
            record.consecutive_so_count, record.total_value_difference_cents
        )
        if record.status != previous_status and record.status != STATUS_NORMAL:
            logger.warning(
                "item %s escalated to %s (consecutive=%d, value=%d)",
                diff.code, record.status, record.consecutive_so_count,
                record.total_value_difference_cents,
            )
        updated.append(record)

    db.session.flush()
    return updated


def status_for(item_code: str) -> str:
    """Current escalation status of an item; normal when it was never discrepant."""
    latest = _latest_record(item_code)
    return latest.status if latest else STATUS_NORMAL


def records_for_item(item_code: str) -> list[OpnameMonitoringRecord]:
    return (
        db.session.query(OpnameMonitoringRecord)
        .filter_by(item_code=item_code)
        .order_by(OpnameMonitoringRecord.date.desc())
        .all()
    )


def list_records(status: str | None = None) -> list[OpnameMonitoringRecord]:
    """Latest record per item, optionally filtered by status, most severe first."""
    latest: dict[str, OpnameMonitoringRecord] = {}
    rows = (
        db.session.query(OpnameMonitoringRecord)
        .order_by(OpnameMonitoringRecord.date.desc(), OpnameMonitoringRecord.id.desc())
        .all()
    )
    for row in rows:
        latest.setdefault(row.item_code, row)

    records = list(latest.values())
    if status:
        records = [r for r in records if r.status == status]
    severity = {STATUS_CRITICAL: 0, STATUS_WARNING: 1, STATUS_NORMAL: 2}
    return sorted(records, key=lambda r: (severity.get(r.status, 3), -r.consecutive_so_count, r.item_code))


def update_notes(item_code: str, day: date, notes: str | None) -> OpnameMonitoringRecord:
    record = (
        db.session.query(OpnameMonitoringRecord)
        .filter_by(item_code=item_code, date=day)
        .first()
    )
    if record is None:
        raise ItemNotFound(item_code)
    record.notes = notes
    db.session.flush()
    return record


# ---------------------------------------------------------------------------
# Trend analysis over committed opname history
# ---------------------------------------------------------------------------

def _history_oldest_first():
    return list(reversed(list_history()))


def consecutive_discrepancies(codes) -> dict:
    """
    Items whose latest run of same-sign differences spans 2+ sessions.

    Only the given item codes are considered (typically the lines of the
    session being reviewed). Returns {"deficit": [...], "surplus": [...]}.
    """
    wanted = set(codes)
    tracker: dict[str, dict] = {}

    for entry in _history_oldest_first():
        for line in entry.lines:
            code = line.get("code")
            if code not in wanted:
                continue
            state = tracker.setdefault(code, {"name": line.get("name"), "deficit": 0, "surplus": 0})
            difference = line.get("difference", 0)
            if difference < 0:
                state["deficit"] += 1
                state["surplus"] = 0
            elif difference > 0:
                state["surplus"] += 1
                state["deficit"] = 0
            else:
                state["deficit"] = 0
                state["surplus"] = 0

    result = {"deficit": [], "surplus": []}
    for code in sorted(tracker):
        state = tracker[code]
        for kind in ("deficit", "surplus"):
            if state[kind] >= 2:
                result[kind].append({"code": code, "name": state["name"], "consecutive_count": state[kind]})
    return result


@dataclass(frozen=True)
class ItemTrend:
    code: str
    name: str
    trend: str
    count: int
    deficit_count: int
    surplus_count: int
    max_consecutive_deficit: int
    max_consecutive_surplus: int
    recent_deficit: int
    recent_surplus: int
    recent_match: int

    @property
    def needs_attention(self) -> bool:
        return self.trend in TRENDS_NEEDING_ATTENTION

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "name": self.name,
            "trend": self.trend,
            "needs_attention": self.needs_attention,
            "count": self.count,
            "deficit_count": self.deficit_count,
            "surplus_count": self.surplus_count,
            "max_consecutive_deficit": self.max_consecutive_deficit,
            "max_consecutive_surplus": self.max_consecutive_surplus,
            "recent_deficit": self.recent_deficit,
            "recent_surplus": self.recent_surplus,
            "recent_match": self.recent_match,
        }


def _classify_trend(stats: dict) -> str:
    count = stats["count"]
    if count <= 1:
        return TREND_FIRST_COUNT

    max_deficit = stats["max_consecutive_deficit"]
    max_surplus = stats["max_consecutive_surplus"]
    recent_deficit = stats["recent_deficit"]
    recent_surplus = stats["recent_surplus"]

    if max_deficit >= FREQUENT_STREAK:
        if recent_deficit == 0 and recent_surplus == 0:
            return TREND_RECOVERED_DEFICIT
        if recent_surplus > 0:
            return TREND_PATTERN_CHANGE
        return TREND_FREQUENT_DEFICIT
    if max_surplus >= FREQUENT_STREAK:
        if recent_surplus == 0 and recent_deficit == 0:
            return TREND_RECOVERED_SURPLUS
        if recent_deficit > 0:
            return TREND_PATTERN_CHANGE
        return TREND_FREQUENT_SURPLUS

    deficit_pct = stats["deficit_count"] * 100 / count
    surplus_pct = stats["surplus_count"] * 100 / count
    if deficit_pct > 50:
        return TREND_FREQUENT_DEFICIT
    if deficit_pct == 0 and surplus_pct == 0:
        return TREND_STABLE
    if deficit_pct < 10 and surplus_pct < 10:
        return TREND_RARE_DISCREPANCY
    if deficit_pct < 10:
        return TREND_RARE_DEFICIT
    if surplus_pct < 10:
        return TREND_RARE_SURPLUS
    return TREND_NORMAL


def analyze_items(items, window: int | None = None) -> list[ItemTrend]:
    """
    Classify each item's discrepancy pattern from committed opname history.

    items: iterable of objects with code and name (e.g. session lines).
    window: how many of the newest sessions count as "recent".
    """
    window = window or current_app.config.get("SO_TREND_WINDOW", 5)
    names = {item.code: item.name for item in items}
    stats: dict[str, dict] = {}

    # Newest first so the first `window` sightings are the recent ones
    for entry in list_history():
        for line in entry.lines:
            code = line.get("code")
            if code not in names:
                continue
            s = stats.setdefault(code, {
                "count": 0, "deficit_count": 0, "surplus_count": 0,
                "run_deficit": 0, "run_surplus": 0,
                "max_consecutive_deficit": 0, "max_consecutive_surplus": 0,
                "recent_deficit": 0, "recent_surplus": 0, "recent_match": 0,
            })
            s["count"] += 1
            difference = line.get("difference", 0)
            recent = s["count"] <= window
            if difference < 0:
                s["deficit_count"] += 1
                s["run_deficit"] += 1
                s["run_surplus"] = 0
                s["max_consecutive_deficit"] = max(s["max_consecutive_deficit"], s["run_deficit"])
                if recent:
                    s["recent_deficit"] += 1
            elif difference > 0:
                s["surplus_count"] += 1
                s["run_surplus"] += 1
                s["run_deficit"] = 0
                s["max_consecutive_surplus"] = max(s["max_consecutive_surplus"], s["run_surplus"])
                if recent:
                    s["recent_surplus"] += 1
            else:
                s["run_deficit"] = 0
                s["run_surplus"] = 0
                if recent:
                    s["recent_match"] += 1

    trends = []
    for code, name in names.items():
        s = stats.get(code)
        if s is None:
            trends.append(ItemTrend(code, name, TREND_FIRST_COUNT, 0, 0, 0, 0, 0, 0, 0, 0))
            continue
        trends.append(ItemTrend(
            code=code,
            name=name,
            trend=_classify_trend(s),
            count=s["count"],
            deficit_count=s["deficit_count"],
            surplus_count=s["surplus_count"],
            max_consecutive_deficit=s["max_consecutive_deficit"],
            max_consecutive_surplus=s["max_consecutive_surplus"],
            recent_deficit=s["recent_deficit"],
            recent_surplus=s["recent_surplus"],
            recent_match=s["recent_match"],
        ))
    return trends
