# Overview: Plain-text stock opname report, grouped by category.

from __future__ import annotations

from itertools import groupby

from flask import current_app

from ..time_utils import to_utc_z
from .opname_schemas import OpnameSession, OpnameSummary
from .opname_service import compute_summary, sort_key, sorted_lines

CODE_WIDTH = 10
NAME_WIDTH = 28
QTY_WIDTH = 8
RULE_WIDTH = CODE_WIDTH + NAME_WIDTH + QTY_WIDTH * 3 + 4


def _signed(value: int) -> str:
    return f"+{value}" if value > 0 else str(value)


def _fit(text: str, width: int) -> str:
    text = text or ""
    return text if len(text) <= width else text[: width - 1] + "~"


def _row(code: str, name: str, system: str, counted: str, difference: str) -> str:
    return (
        f"{_fit(code, CODE_WIDTH):<{CODE_WIDTH}} "
        f"{_fit(name, NAME_WIDTH):<{NAME_WIDTH}} "
        f"{system:>{QTY_WIDTH}} "
        f"{counted:>{QTY_WIDTH}} "
        f"{difference:>{QTY_WIDTH}}"
    )


def render_report(
    session: OpnameSession,
    summary: OpnameSummary | None = None,
    only_mismatched: bool = False,
) -> str:
    """
    Report for printing or golden-output comparison.

    Lines appear in the display order (category, then name), under one
    header per category. Columns: code, name, system, counted, difference.
    """
    summary = summary or compute_summary(session)
    uncategorized = current_app.config.get("SO_UNCATEGORIZED_LABEL", "Uncategorized")

    lines = session.lines
    if only_mismatched:
        lines = [line for line in lines if line.difference != 0]

    out = [
        "STOCK OPNAME REPORT",
        f"Session: {session.id}",
        f"Mode: {session.mode}",
        f"Started: {to_utc_z(session.started_at)}",
        "=" * RULE_WIDTH,
        _row("CODE", "NAME", "SYSTEM", "COUNTED", "DIFF"),
        "-" * RULE_WIDTH,
    ]

    ordered = sorted_lines(lines, uncategorized)
    for category, group in groupby(ordered, key=lambda line: sort_key(line, uncategorized)[0]):
        out.append(f"[{category}]")
        for line in group:
            out.append(_row(
                line.code,
                line.name,
                str(line.system_quantity),
                str(line.counted_quantity),
                _signed(line.difference),
            ))

    out.extend([
        "-" * RULE_WIDTH,
        f"Total items: {summary.total_items}",
        f"Matching: {summary.matching_count}",
        f"Mismatching: {summary.mismatching_count} "
        f"(surplus {summary.surplus_count}, deficit {summary.deficit_count})",
        f"Net difference: {_signed(summary.total_difference)}",
        f"Net value difference (cents): {_signed(summary.total_value_difference_cents)}",
    ])
    return "\n".join(out) + "\n"
