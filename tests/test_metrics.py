import unittest

from app.pipeline.metrics import (
    holding_rows,
    pnl_percent,
    portfolio_totals,
    sort_rows,
    summarize,
)
from app.pipeline.models import NOT_APPLICABLE, Holding


def _holding(symbol, amount, price, note=""):
    return Holding(
        symbol=symbol,
        amount=amount,
        purchase_price=price,
        total_cost=amount * price,
        average_price=price,
        note=note,
    )


class PnlPercentTests(unittest.TestCase):
    def test_not_applicable_only_for_zero_cost(self):
        self.assertEqual(pnl_percent(0.0, 0.0), NOT_APPLICABLE)
        self.assertEqual(pnl_percent(123.0, 0.0), NOT_APPLICABLE)
        self.assertAlmostEqual(pnl_percent(150.0, 100.0), 50.0)
        self.assertAlmostEqual(pnl_percent(0.0, 1e-9), -100.0)

    def test_unpriced_holding_is_total_loss(self):
        row = holding_rows([_holding("BTC", 1, 100)], {})[0]
        self.assertEqual(row["currentValue"], 0.0)
        self.assertEqual(row["pnl"], -100.0)
        self.assertAlmostEqual(row["pnlPercent"], -100.0)
        self.assertEqual(row["valuePercent"], 0.0)


class TotalsTests(unittest.TestCase):
    def setUp(self):
        self.holdings = [_holding("BTC", 1, 100), _holding("ETH", 2, 50)]
        self.prices = {"BTC": {"price": 150, "change24h": 1.5}, "ETH": {"price": 25, "change24h": -2}}

    def test_totals_without_override(self):
        t = portfolio_totals(self.holdings, self.prices)
        self.assertEqual(t["totalValue"], 200.0)
        self.assertEqual(t["totalCost"], 200.0)
        self.assertEqual(t["totalPnl"], 0.0)
        self.assertAlmostEqual(t["totalPnlPercent"], 0.0)
        self.assertIsNone(t["costOverride"])

    def test_override_replaces_aggregate_cost_only(self):
        t = portfolio_totals(self.holdings, self.prices, override=100.0)
        self.assertEqual(t["totalCost"], 100.0)
        self.assertEqual(t["totalPnl"], 100.0)
        self.assertAlmostEqual(t["totalPnlPercent"], 100.0)
        rows = holding_rows(self.holdings, self.prices)
        self.assertEqual(sum(r["totalCost"] for r in rows), 200.0)

    def test_zero_override_gives_not_applicable(self):
        t = portfolio_totals(self.holdings, self.prices, override=0.0)
        self.assertEqual(t["totalPnlPercent"], NOT_APPLICABLE)

    def test_value_percent_sums_to_hundred(self):
        rows = holding_rows(self.holdings, self.prices)
        self.assertAlmostEqual(sum(r["valuePercent"] for r in rows), 100.0)
        by_symbol = {r["symbol"]: r for r in rows}
        self.assertAlmostEqual(by_symbol["BTC"]["valuePercent"], 75.0)
        self.assertEqual(by_symbol["ETH"]["change24h"], -2.0)


class SortTests(unittest.TestCase):
    def setUp(self):
        self.holdings = [
            _holding("ETH", 2, 50),
            _holding("BTC", 1, 100),
            _holding("AIR", 10, 0),
        ]
        self.prices = {"BTC": {"price": 300}, "ETH": {"price": 40}, "AIR": {"price": 1}}

    def test_default_order_is_current_value_desc(self):
        out = summarize(self.holdings, self.prices)
        self.assertEqual([r["symbol"] for r in out["holdings"]], ["BTC", "ETH", "AIR"])
        self.assertEqual(out["sort"], {"column": "currentValue", "order": "desc"})
        self.assertEqual(out["count"], 3)

    def test_symbol_sorts_lexicographically(self):
        rows = sort_rows(holding_rows(self.holdings, self.prices), "symbol", "asc")
        self.assertEqual([r["symbol"] for r in rows], ["AIR", "BTC", "ETH"])

    def test_not_applicable_sorts_as_zero(self):
        rows = sort_rows(holding_rows(self.holdings, self.prices), "pnlPercent", "asc")
        # ETH -20%, AIR N/A (0), BTC +200%
        self.assertEqual([r["symbol"] for r in rows], ["ETH", "AIR", "BTC"])

    def test_purchase_price_sorts_by_average_price(self):
        rows = sort_rows(holding_rows(self.holdings, self.prices), "purchasePrice", "desc")
        self.assertEqual([r["symbol"] for r in rows], ["BTC", "ETH", "AIR"])

    def test_unknown_column_rejected(self):
        with self.assertRaises(ValueError):
            sort_rows([], "name", "asc")
        with self.assertRaises(ValueError):
            sort_rows([], "symbol", "sideways")


if __name__ == "__main__":
    unittest.main()
