import unittest
from unittest import mock

import httpx

from app.errors import PriceFeedError
from app.providers.coingecko_adapter import CoinGeckoAdapter, coin_name


def _response(status_code, payload=None):
    resp = mock.MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload or {}
    return resp


class CoinGeckoAdapterTests(unittest.TestCase):
    def setUp(self):
        self.adapter = CoinGeckoAdapter(timeout=5, base_url="https://example.test/api/v3/")

    @mock.patch("app.providers.coingecko_adapter.httpx.get")
    def test_prices_keyed_by_symbol(self, get):
        get.return_value = _response(200, {
            "bitcoin": {"usd": 65000.0, "usd_24h_change": 2.5},
            "ethereum": {"usd": 3200.0},
        })
        prices = self.adapter.fetch_prices(["BTC", "ETH", "NOTACOIN"])
        self.assertEqual(prices, {
            "BTC": {"price": 65000.0, "change24h": 2.5},
            "ETH": {"price": 3200.0, "change24h": 0},
        })
        args, kwargs = get.call_args
        self.assertEqual(args[0], "https://example.test/api/v3/simple/price")
        self.assertEqual(kwargs["params"]["ids"], "bitcoin,ethereum")
        self.assertEqual(kwargs["params"]["vs_currencies"], "usd")
        self.assertEqual(kwargs["timeout"], 5)

    @mock.patch("app.providers.coingecko_adapter.httpx.get")
    def test_unknown_symbols_only_skip_request(self, get):
        self.assertEqual(self.adapter.fetch_prices(["NOTACOIN"]), {})
        get.assert_not_called()

    @mock.patch("app.providers.coingecko_adapter.httpx.get")
    def test_non_200_raises(self, get):
        get.return_value = _response(429)
        with self.assertRaises(PriceFeedError):
            self.adapter.fetch_prices(["BTC"])

    @mock.patch("app.providers.coingecko_adapter.httpx.get")
    def test_network_error_raises(self, get):
        get.side_effect = httpx.ConnectError("unreachable")
        with self.assertRaises(PriceFeedError):
            self.adapter.fetch_prices(["BTC"])

    @mock.patch("app.providers.coingecko_adapter.httpx.get")
    def test_disabled_adapter_returns_nothing(self, get):
        self.assertEqual(CoinGeckoAdapter(enabled=False).fetch_prices(["BTC"]), {})
        get.assert_not_called()

    def test_coin_name(self):
        self.assertEqual(coin_name("SOL"), "Solana")
        self.assertEqual(coin_name("XYZ"), "XYZ")


if __name__ == "__main__":
    unittest.main()
