import unittest
from datetime import datetime, timedelta, timezone

from app.errors import NotFoundError, StorageError, ValidationError
from app.pipeline.session import COST_OVERRIDE_KEY, PortfolioSession
from app.pipeline.snapshots import SnapshotStore, snapshot_key
from app.storage import SNAPSHOT_PREFIX, MemoryStore

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class BrokenListingStore(MemoryStore):
    def list_keys(self, prefix):
        raise StorageError("listing unavailable")


def _session(store=None):
    session = PortfolioSession(store or MemoryStore())
    session.load()
    return session


class SnapshotKeyTests(unittest.TestCase):
    def test_key_scheme(self):
        self.assertEqual(
            snapshot_key("1704103200000", "2024-01-01T10:00:00.000Z"),
            "snapshot:1704103200000-2024-01-01T10-00-00-000Z",
        )

    def test_offset_timestamp_normalised_to_utc(self):
        self.assertEqual(
            snapshot_key("1", "2024-01-01T12:00:00+02:00"),
            "snapshot:1-2024-01-01T10-00-00-000Z",
        )


class SnapshotOperationTests(unittest.TestCase):
    def setUp(self):
        self.store = MemoryStore()
        self.session = _session(self.store)

    def test_empty_ledger_cannot_snapshot(self):
        with self.assertRaises(ValidationError):
            self.session.create_snapshot()
        with self.assertRaises(ValidationError):
            self.session.set_cost_override(50)
        self.assertEqual(self.store.list_keys(SNAPSHOT_PREFIX), [])

    def test_manual_snapshot_is_stored_and_isolated(self):
        self.session.add_holding("BTC", 1, 100)
        self.session.prices = {"BTC": {"price": 200, "change24h": 1}}
        snap = self.session.create_snapshot()
        self.assertEqual(snap.description, "Manual Snapshot")
        self.assertEqual(snap.total_value, 200)
        self.assertEqual(snap.total_pnl_percent, 100)

        self.session.add_holding("BTC", 1, 300)
        self.session.prices["BTC"]["price"] = 1
        stored = self.session.snapshots.get(snap.id)
        self.assertEqual(stored.portfolio[0].amount, 1)
        self.assertEqual(stored.crypto_data["BTC"]["price"], 200)
        self.assertEqual(snap.portfolio[0].amount, 1)
        self.assertEqual(self.session.recent[-1].id, snap.id)

    def test_zero_cost_snapshot_stores_numeric_percent(self):
        self.session.add_holding("AIR", 10, 0)
        snap = self.session.create_snapshot("free tokens")
        self.assertEqual(snap.total_pnl_percent, 0)
        self.assertEqual(self.session.snapshots.latest_raw()["totalPnlPercent"], 0)

    def test_cost_override_set_and_reset_snapshots(self):
        self.session.add_holding("BTC", 1, 100)
        self.session.add_holding("ETH", 2, 25)
        snap = self.session.set_cost_override(250)
        self.assertEqual(snap.total_cost, 250)
        self.assertEqual(snap.description, "Total Cost Set to $250")
        self.assertEqual(self.store.get(COST_OVERRIDE_KEY), {"totalCost": 250.0})

        snap = self.session.reset_cost_override()
        self.assertEqual(snap.total_cost, 150)
        self.assertEqual(snap.description, "Total Cost Reset to Individual Coin Values")
        self.assertEqual(self.session.totals()["totalCost"], 150)
        self.assertEqual(self.store.get(COST_OVERRIDE_KEY), {"totalCost": None})

    def test_cost_override_survives_reload(self):
        self.session.add_holding("BTC", 1, 100)
        self.session.set_cost_override(80.5)
        reloaded = _session(self.store)
        self.assertEqual(reloaded.ledger.cost_override, 80.5)
        self.assertEqual(len(reloaded.ledger), 1)

    def test_restore_replaces_ledger_and_prices(self):
        self.session.add_holding("BTC", 1, 100)
        self.session.prices = {"BTC": {"price": 120, "change24h": 0}}
        snap = self.session.create_snapshot()
        self.session.clear_holdings()
        self.session.add_holding("ETH", 5, 10)
        self.session.prices = {}

        self.session.restore_snapshot(snap.id)
        self.assertEqual([h.symbol for h in self.session.ledger.holdings], ["BTC"])
        self.assertEqual(self.session.prices["BTC"]["price"], 120)
        self.assertEqual(self.store.get("portfolio")[0]["symbol"], "BTC")

    def test_restore_unknown_snapshot(self):
        with self.assertRaises(NotFoundError):
            self.session.restore_snapshot("nope")

    def test_delete_by_id_and_all(self):
        self.session.add_holding("BTC", 1, 100)
        first = self.session.maybe_auto_snapshot(T0)
        second = self.session.maybe_auto_snapshot(T0 + timedelta(hours=2))
        self.session.snapshots.delete(first.id)
        self.assertEqual([s.id for s in self.session.snapshots.list_all()], [second.id])
        with self.assertRaises(NotFoundError):
            self.session.snapshots.delete(first.id)
        self.assertEqual(self.session.snapshots.delete_all(), 1)
        self.assertIsNone(self.session.snapshots.latest_total_cost())

    def test_recent_list_loaded_from_store_and_capped(self):
        self.session.add_holding("BTC", 1, 100)
        for i in range(4):
            self.session.maybe_auto_snapshot(T0 + timedelta(hours=2 * i))
        reloaded = PortfolioSession(self.store, recent_snapshots_limit=3)
        reloaded.load()
        stored = [s.id for s in self.session.snapshots.list_all()]
        self.assertEqual([s.id for s in reloaded.recent_snapshots()], stored[-3:])

        reloaded.delete_snapshot(stored[-1])
        self.assertEqual([s.id for s in reloaded.recent_snapshots()], stored[-3:-1])
        reloaded.delete_all_snapshots()
        self.assertEqual(reloaded.recent_snapshots(), [])

    def test_malformed_cost_override_document_ignored(self):
        self.store.set(COST_OVERRIDE_KEY, [250])
        self.assertIsNone(_session(self.store).ledger.cost_override)
        self.store.set(COST_OVERRIDE_KEY, 250)
        self.assertIsNone(_session(self.store).ledger.cost_override)

    def test_load_latest_resets_history(self):
        self.session.add_holding("BTC", 1, 100)
        self.session.prices = {"BTC": {"price": 100}}
        self.session.maybe_auto_snapshot(T0)
        self.session.prices = {"BTC": {"price": 300}}
        latest = self.session.maybe_auto_snapshot(T0 + timedelta(hours=3))
        self.session.summary()
        self.session.summary()

        loaded = self.session.load_latest_snapshot()
        self.assertEqual(loaded.id, latest.id)
        self.assertEqual(len(self.session.history.entries), 1)
        entry = self.session.history.entries[0]
        self.assertEqual(entry.timestamp, latest.timestamp)
        self.assertEqual(entry.total_value, 300)

    def test_load_latest_without_snapshots(self):
        self.assertIsNone(self.session.load_latest_snapshot())

    def test_compare_reports_changes(self):
        self.session.add_holding("BTC", 1, 100)
        self.session.prices = {"BTC": {"price": 100}}
        snap = self.session.create_snapshot()
        self.session.prices = {"BTC": {"price": 150}}
        out = self.session.compare_snapshot(snap.id)
        self.assertEqual(out["metrics"]["totalValue"], {"snapshot": 100, "current": 150, "change": 50})
        self.assertEqual(out["metrics"]["totalPnlPercent"]["change"], 50)

    def test_latest_total_cost(self):
        self.session.add_holding("BTC", 1, 100)
        self.session.maybe_auto_snapshot(T0)
        self.session.ledger.cost_override = 42.0
        self.session.maybe_auto_snapshot(T0 + timedelta(hours=2))
        self.assertEqual(self.session.snapshots.latest_total_cost(), 42.0)


class AutoSnapshotGateTests(unittest.TestCase):
    def setUp(self):
        self.session = _session()
        self.session.add_holding("BTC", 1, 100)

    def test_first_snapshot_is_created(self):
        snap = self.session.maybe_auto_snapshot(T0)
        self.assertEqual(snap.description, "Page Refresh")
        self.assertEqual(snap.timestamp, "2024-05-01T12:00:00.000Z")

    def test_suppressed_within_the_hour(self):
        self.session.maybe_auto_snapshot(T0)
        self.assertIsNone(self.session.maybe_auto_snapshot(T0 + timedelta(minutes=30)))
        self.assertIsNone(self.session.maybe_auto_snapshot(T0 + timedelta(seconds=3600)))
        self.assertIsNotNone(self.session.maybe_auto_snapshot(T0 + timedelta(seconds=3601)))

    def test_empty_ledger_suppressed(self):
        self.session.clear_holdings()
        self.assertIsNone(self.session.maybe_auto_snapshot(T0))

    def test_unreadable_listing_allows_creation(self):
        gate = SnapshotStore(BrokenListingStore())
        self.assertTrue(gate.should_auto_snapshot(T0, 3600))


class BulkSaveTests(unittest.TestCase):
    def test_save_raw_requires_id_and_timestamp(self):
        snaps = SnapshotStore(MemoryStore())
        with self.assertRaises(ValidationError):
            snaps.save_raw([{"id": "1"}])
        self.assertEqual(snaps.list_raw(), [])

    def test_save_raw_lists_oldest_first(self):
        snaps = SnapshotStore(MemoryStore())
        snaps.save_raw([
            {"id": "2", "timestamp": "2024-01-02T00:00:00.000Z", "totalCost": 2},
            {"id": "1", "timestamp": "2024-01-01T00:00:00.000Z", "totalCost": 1},
        ])
        self.assertEqual([d["id"] for d in snaps.list_raw()], ["1", "2"])
        self.assertEqual(snaps.latest_total_cost(), 2)


if __name__ == "__main__":
    unittest.main()
