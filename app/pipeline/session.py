from __future__ import annotations

from collections import deque
from dataclasses import replace
from datetime import datetime

import structlog

from ..errors import StorageError, ValidationError
from ..utils import Stopwatch, coerce_float, epoch_millis_id, now_utc, now_utc_iso, to_iso_millis
from .history import HistoryReconciler
from .holdings import Ledger
from .metrics import numeric_pnl_percent, portfolio_totals, summarize
from .models import NOT_APPLICABLE, Holding, HistoryEntry, Snapshot
from .projects import ProjectRegistry
from .snapshots import SnapshotStore
from .transactions import TRANSACTIONS_KEY, TransactionLog

log = structlog.get_logger()

PORTFOLIO_KEY = "portfolio"
COST_OVERRIDE_KEY = "cost_override"
EXPORT_VERSION = "1.0"


def _money(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _change(new, old):
    if NOT_APPLICABLE in (new, old):
        return None
    return new - old


class PortfolioSession:
    """Everything one client session works against: ledger, prices, history, snapshots, projects."""

    def __init__(
        self,
        store,
        history_max_entries: int = 100,
        recent_snapshots_limit: int = 50,
        auto_snapshot_min_interval_seconds: float = 3600,
    ):
        self.store = store
        self.transactions = TransactionLog(store)
        self.snapshots = SnapshotStore(store)
        self.projects = ProjectRegistry(store)
        self.history = HistoryReconciler(max_entries=history_max_entries)
        self.recent: deque[Snapshot] = deque(maxlen=recent_snapshots_limit)
        self.ledger = Ledger(transactions=self.transactions)
        self.prices: dict[str, dict] = {}
        self.prices_updated_at: str | None = None
        self.auto_snapshot_min_interval_seconds = auto_snapshot_min_interval_seconds

    @classmethod
    def from_settings(cls, store, settings) -> "PortfolioSession":
        session = cls(
            store,
            history_max_entries=settings.history_max_entries,
            recent_snapshots_limit=settings.recent_snapshots_limit,
            auto_snapshot_min_interval_seconds=settings.auto_snapshot_min_interval_seconds,
        )
        session.load()
        return session

    def load(self):
        rows = self.store.get(PORTFOLIO_KEY, [])
        doc = self.store.get(COST_OVERRIDE_KEY, None)
        override = doc.get("totalCost") if isinstance(doc, dict) else None
        self.ledger = Ledger.from_list(
            rows if isinstance(rows, list) else [],
            cost_override=coerce_float(override),
            transactions=self.transactions,
        )
        self._reload_recent()
        log.info(
            "session_loaded",
            holdings=len(self.ledger),
            cost_override=self.ledger.cost_override,
            recent_snapshots=len(self.recent),
        )

    # ── persistence ──────────────────────────────────────────────────────────

    def _persist_portfolio(self):
        self.store.set(PORTFOLIO_KEY, self.ledger.to_list())

    def _persist_cost_override(self):
        self.store.set(COST_OVERRIDE_KEY, {"totalCost": self.ledger.cost_override})

    def _record_history(self):
        self.history.record(self.current_entry())

    def _reload_recent(self):
        try:
            docs = self.snapshots.list_raw()
        except StorageError as e:
            log.warning("recent_snapshots_unavailable", err=str(e))
            docs = []
        self.recent.clear()
        self.recent.extend(Snapshot.from_dict(d) for d in docs)

    # ── metrics ──────────────────────────────────────────────────────────────

    def totals(self) -> dict:
        return portfolio_totals(self.ledger.holdings, self.prices, self.ledger.cost_override)

    def current_entry(self, timestamp: str | None = None) -> HistoryEntry:
        t = self.totals()
        return HistoryEntry(
            timestamp=timestamp or now_utc_iso(),
            total_value=t["totalValue"],
            total_cost=t["totalCost"],
            total_pnl=t["totalPnl"],
            total_pnl_percent=t["totalPnlPercent"],
            portfolio=tuple(replace(h) for h in self.ledger.holdings),
        )

    def summary(self, sort: str | None = None, order: str | None = None) -> dict:
        try:
            out = summarize(self.ledger.holdings, self.prices, self.ledger.cost_override, sort, order)
        except ValueError as e:
            raise ValidationError(str(e)) from e
        self._record_history()
        out["pricesUpdatedAt"] = self.prices_updated_at
        return out

    # ── ledger ───────────────────────────────────────────────────────────────

    def add_holding(self, symbol, amount, purchase_price, note: str = "") -> Holding:
        holding = self.ledger.add_or_merge(symbol, amount, purchase_price, note)
        self._persist_portfolio()
        self._record_history()
        return holding

    def remove_holding(self, symbol: str, note: str = "") -> bool:
        removed = self.ledger.remove(symbol, note, self.prices)
        if removed is None:
            return False
        self._persist_portfolio()
        self._record_history()
        return True

    def clear_holdings(self):
        self.ledger.clear()
        self._persist_portfolio()
        self._record_history()

    def replace_portfolio(self, rows) -> int:
        if not isinstance(rows, list):
            raise ValidationError("portfolio must be a list of holdings")
        self.ledger.replace(Holding.from_dict(r) for r in rows if isinstance(r, dict))
        self._persist_portfolio()
        self._record_history()
        log.info("portfolio_replaced", holdings=len(self.ledger))
        return len(self.ledger)

    def import_portfolio(self, payload) -> int:
        rows = payload.get("portfolio") if isinstance(payload, dict) else None
        if not isinstance(rows, list):
            raise ValidationError("Invalid portfolio data format")
        return self.replace_portfolio(rows)

    def export_portfolio(self) -> dict:
        return {"portfolio": self.ledger.to_list(), "exportDate": now_utc_iso(), "version": EXPORT_VERSION}

    def set_cost_override(self, value) -> Snapshot:
        value = self.ledger.set_cost_override(value)
        self._persist_cost_override()
        self._record_history()
        return self._take_snapshot(f"Total Cost Set to ${_money(value)}")

    def reset_cost_override(self) -> Snapshot:
        self.ledger.reset_cost_override()
        self._persist_cost_override()
        self._record_history()
        return self._take_snapshot("Total Cost Reset to Individual Coin Values")

    # ── snapshots ────────────────────────────────────────────────────────────

    def _take_snapshot(self, description: str, now: datetime | None = None) -> Snapshot:
        now = now or now_utc()
        t = self.totals()
        snapshot = Snapshot.capture(
            id=epoch_millis_id(now),
            timestamp=to_iso_millis(now),
            description=description,
            holdings=self.ledger.holdings,
            crypto_data=self.prices,
            projects=self.projects.projects(),
            total_value=t["totalValue"],
            total_cost=t["totalCost"],
            total_pnl=t["totalPnl"],
            total_pnl_percent=numeric_pnl_percent(t["totalValue"], t["totalCost"]),
        )
        self.snapshots.save(snapshot)
        self.recent.append(snapshot)
        log.info("snapshot_created", id=snapshot.id, description=description, total_value=snapshot.total_value)
        return snapshot

    def create_snapshot(self, description: str | None = None) -> Snapshot:
        if self.ledger.is_empty:
            raise ValidationError("Cannot create snapshot: Portfolio is empty")
        return self._take_snapshot(description or "Manual Snapshot")

    def maybe_auto_snapshot(self, now: datetime | None = None) -> Snapshot | None:
        if self.ledger.is_empty:
            log.debug("auto_snapshot_skipped", reason="empty_ledger")
            return None
        if not self.snapshots.should_auto_snapshot(now, self.auto_snapshot_min_interval_seconds):
            log.debug("auto_snapshot_skipped", reason="recent_snapshot")
            return None
        return self._take_snapshot("Page Refresh", now)

    def _apply_snapshot(self, snapshot: Snapshot):
        self.ledger.replace(snapshot.holdings_copy())
        self.prices = snapshot.prices_copy()
        self._persist_portfolio()

    def restore_snapshot(self, snapshot_id: str) -> Snapshot:
        snapshot = self.snapshots.get(snapshot_id)
        self._apply_snapshot(snapshot)
        log.info("snapshot_restored", id=snapshot.id, description=snapshot.description)
        return snapshot

    def load_latest_snapshot(self) -> Snapshot | None:
        snapshot = self.snapshots.latest()
        if snapshot is None:
            log.info("snapshot_load_latest_empty")
            return None
        self._apply_snapshot(snapshot)
        live = self.current_entry(snapshot.timestamp)
        # Zero or missing snapshot totals fall back to the live metrics.
        self.history.reset([
            HistoryEntry(
                timestamp=snapshot.timestamp,
                total_value=snapshot.total_value or live.total_value,
                total_cost=snapshot.total_cost or live.total_cost,
                total_pnl=snapshot.total_pnl or live.total_pnl,
                total_pnl_percent=snapshot.total_pnl_percent or live.total_pnl_percent,
                portfolio=snapshot.portfolio,
            )
        ])
        log.info("snapshot_loaded_latest", id=snapshot.id, description=snapshot.description)
        return snapshot

    def recent_snapshots(self) -> list[Snapshot]:
        return list(self.recent)

    def save_snapshots(self, docs) -> int:
        count = self.snapshots.save_raw(docs)
        self._reload_recent()
        return count

    def delete_snapshot(self, snapshot_id: str) -> int:
        removed = self.snapshots.delete(snapshot_id)
        kept = [s for s in self.recent if s.id != str(snapshot_id)]
        self.recent.clear()
        self.recent.extend(kept)
        return removed

    def delete_all_snapshots(self) -> int:
        deleted = self.snapshots.delete_all()
        self.recent.clear()
        return deleted

    def compare_snapshot(self, snapshot_id: str) -> dict:
        snapshot = self.snapshots.get(snapshot_id)
        t = self.totals()
        fields = (
            ("totalValue", snapshot.total_value, t["totalValue"]),
            ("totalCost", snapshot.total_cost, t["totalCost"]),
            ("totalPnl", snapshot.total_pnl, t["totalPnl"]),
            ("totalPnlPercent", snapshot.total_pnl_percent, t["totalPnlPercent"]),
        )
        return {
            "snapshot": {"id": snapshot.id, "timestamp": snapshot.timestamp, "description": snapshot.description},
            "metrics": {
                name: {"snapshot": old, "current": new, "change": _change(new, old)}
                for name, old, new in fields
            },
        }

    # ── prices ───────────────────────────────────────────────────────────────

    def refresh_prices(self, adapter) -> dict:
        symbols = sorted({h.symbol for h in self.ledger.holdings})
        if not symbols:
            return self.prices
        sw = Stopwatch()
        prices = adapter.fetch_prices(symbols)
        self.prices = prices
        self.prices_updated_at = now_utc_iso()
        self._record_history()
        log.info("prices_refreshed", symbols=len(symbols), priced=len(prices), elapsed_sec=sw.elapsed())
        return self.prices

    # ── remote store upload ──────────────────────────────────────────────────

    def migrate(self, payload: dict) -> list[str]:
        if self.store.backend != "redis":
            raise ValidationError("Migration only works with the Redis store configured")
        migrated = []
        if payload.get("portfolio") is not None:
            self.store.set(PORTFOLIO_KEY, payload["portfolio"])
            migrated.append(f"portfolio ({len(payload['portfolio'])} items)")
        if payload.get("transactions") is not None:
            self.store.set(TRANSACTIONS_KEY, payload["transactions"])
            migrated.append(f"transactions ({len(payload['transactions'])} items)")
        if payload.get("projects") is not None:
            self.projects.replace_document(payload["projects"])
            migrated.append(f"projects ({len(self.projects.projects())} items)")
        if isinstance(payload.get("snapshots"), list):
            count = self.save_snapshots(payload["snapshots"])
            migrated.append(f"snapshots ({count} items)")
        if payload.get("portfolio") is not None:
            self.load()
        log.info("migration_applied", migrated=migrated)
        return migrated
