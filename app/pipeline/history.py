from __future__ import annotations

from collections import deque
from datetime import datetime
from typing import Iterable

import pandas as pd
import structlog

from ..errors import ValidationError
from ..utils import coerce_float, parse_timestamp
from .models import HistoryEntry

log = structlog.get_logger()

HISTORY_MODES = ("snapshot", "realtime")
CSV_HEADER = "date,portfolio"


class HistoryReconciler:
    """
    Session history (bounded, newest last) plus the rule that picks the chart source.
    - mode=snapshot and at least one stored snapshot: chart the snapshots
    - otherwise: chart the session entries
    """

    def __init__(self, max_entries: int = 100, mode: str = "snapshot"):
        self.entries: deque[HistoryEntry] = deque(maxlen=max_entries)
        self.mode = mode

    def record(self, entry: HistoryEntry):
        self.entries.append(entry)

    def reset(self, entries: Iterable[HistoryEntry] = ()):
        self.entries.clear()
        self.entries.extend(entries)

    def set_mode(self, mode: str) -> str:
        if mode not in HISTORY_MODES:
            raise ValidationError("mode must be snapshot|realtime")
        self.mode = mode
        log.info("history_mode_changed", mode=mode)
        return mode

    def source_for(self, mode: str | None, has_snapshots: bool) -> str:
        mode = mode or self.mode
        if mode not in HISTORY_MODES:
            raise ValidationError("mode must be snapshot|realtime")
        return "snapshot" if mode == "snapshot" and has_snapshots else "realtime"

    def chart_series(self, snapshot_docs: list[dict], mode: str | None = None, current: HistoryEntry | None = None) -> dict:
        """Points for the value/cost chart.

        `current` seeds the session history when it is empty (pass None for an empty ledger).
        """
        source = self.source_for(mode, bool(snapshot_docs))
        if source == "snapshot":
            points = [_snapshot_point(d) for d in snapshot_docs]
        else:
            if not self.entries and current is not None:
                self.record(current)
            points = [e.to_dict(include_portfolio=False) for e in self.entries]
        return {"mode": source, "points": points, "count": len(points)}


def _snapshot_point(doc: dict) -> dict:
    return {
        "timestamp": doc.get("timestamp"),
        "totalValue": coerce_float(doc.get("totalValue"), 0.0),
        "totalCost": coerce_float(doc.get("totalCost"), 0.0),
        "totalPnl": coerce_float(doc.get("totalPnl"), 0.0),
        "totalPnlPercent": coerce_float(doc.get("totalPnlPercent"), 0.0),
        "description": doc.get("description"),
    }


def daily_rows(snapshot_docs: list[dict], start: datetime | None = None, end: datetime | None = None) -> list[tuple[str, float]]:
    """One (YYYY-MM-DD, totalValue) per UTC day inside [start, end], latest snapshot of the day wins."""
    records = []
    for doc in snapshot_docs:
        ts = parse_timestamp(doc.get("timestamp"))
        if ts is None:
            continue
        records.append({"ts": ts, "value": coerce_float(doc.get("totalValue"), 0.0)})
    if not records:
        return []

    df = pd.DataFrame.from_records(records)
    df["ts"] = pd.to_datetime(df["ts"], utc=True)
    df["date"] = df["ts"].dt.strftime("%Y-%m-%d")
    if start is not None:
        df = df[df["ts"] >= pd.Timestamp(start)]
    if end is not None:
        df = df[df["ts"] <= pd.Timestamp(end)]
    if df.empty:
        return []

    # idxmax keeps the first listed row when timestamps tie.
    daily = df.loc[df.groupby("date", sort=True)["ts"].idxmax()]
    return [(row.date, float(row.value)) for row in daily.itertuples(index=False)]


def render_csv(rows: list[tuple[str, float]]) -> str:
    return "\n".join([CSV_HEADER] + [f"{d},{v:.2f}" for d, v in rows])


def export_filename(rows: list[tuple[str, float]], start: datetime | None, end: datetime | None) -> str:
    start_str = start.strftime("%Y-%m-%d") if start else (rows[0][0] if rows else "all")
    end_str = end.strftime("%Y-%m-%d") if end else (rows[-1][0] if rows else "all")
    return f"portfolio-history-{start_str}-to-{end_str}.csv"


def export_csv(snapshot_docs: list[dict], start: datetime | None = None, end: datetime | None = None) -> tuple[str, str]:
    rows = daily_rows(snapshot_docs, start, end)
    log.info("history_exported", rows=len(rows), start=str(start) if start else None, end=str(end) if end else None)
    return export_filename(rows, start, end), render_csv(rows)
