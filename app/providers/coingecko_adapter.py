from __future__ import annotations

import httpx
import structlog

from ..errors import PriceFeedError

log = structlog.get_logger()

SYMBOL_TO_ID = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "ADA": "cardano",
    "DOT": "polkadot",
    "LINK": "chainlink",
    "LTC": "litecoin",
    "BCH": "bitcoin-cash",
    "XRP": "ripple",
    "DOGE": "dogecoin",
    "SHIB": "shiba-inu",
    "MATIC": "matic-network",
    "AVAX": "avalanche-2",
    "SOL": "solana",
    "ATOM": "cosmos",
    "ALGO": "algorand",
    "ASTER": "aster-2",
    "VET": "vechain",
    "FIL": "filecoin",
    "TRX": "tron",
    "EOS": "eos",
    "XLM": "stellar",
    "HUMA": "huma-finance",
    "S": "sonic-3",
    "ENA": "ethena",
    "HYPE": "hyperliquid",
    "USDC": "usd-coin",
    "USDT": "tether",
    "BNB": "binancecoin",
    "ARB": "arbitrum",
    "OP": "optimism",
    "UNI": "uniswap",
    "AAVE": "aave",
    "COMP": "compound-governance-token",
    "MKR": "maker",
    "CRV": "curve-dao-token",
    "SUSHI": "sushi",
    "1INCH": "1inch",
    "YFI": "yearn-finance",
    "SNX": "havven",
    "BAL": "balancer",
    "LDO": "lido-dao",
    "RPL": "rocket-pool",
    "FXS": "frax-share",
    "FRAX": "frax",
    "LQTY": "liquity",
    "CVX": "convex-finance",
    "PENDLE": "pendle",
    "GMX": "gmx",
    "MAGIC": "magic",
    "RDNT": "radiant-capital",
    "GRAIL": "camelot-token",
    "JONES": "jones-dao",
    "DPX": "dopex",
    "PLS": "plutusdao",
    "UMAMI": "umami-finance",
    "Y2K": "y2k",
    "GMD": "gmd-protocol",
    "STKSCRT": "stksecret",
    "STKREGEN": "stkregen",
    "STKIOV": "stkiov",
    "STKNGM": "stkngm",
    "STKBAND": "stkband",
    "STKKAVA": "stkkava",
    "STKHARD": "stkhard",
    "STKSWP": "stkswp",
    "STKXPRT": "stkxprt",
    "STKPSTAKE": "stkpstake",
    "FORM": "four",
    "SYRUP": "syrup",
    "FF": "falcon-finance-ff",
}

COIN_NAMES = {
    "BTC": "Bitcoin",
    "ETH": "Ethereum",
    "ADA": "Cardano",
    "DOT": "Polkadot",
    "LINK": "Chainlink",
    "LTC": "Litecoin",
    "BCH": "Bitcoin Cash",
    "XRP": "Ripple",
    "DOGE": "Dogecoin",
    "SHIB": "Shiba Inu",
    "MATIC": "Polygon",
    "AVAX": "Avalanche",
    "SOL": "Solana",
    "ATOM": "Cosmos",
    "ALGO": "Algorand",
    "VET": "VeChain",
    "FIL": "Filecoin",
    "TRX": "TRON",
    "EOS": "EOS",
    "XLM": "Stellar",
    "HUMA": "Huma Finance",
    "S": "Sonic",
    "ENA": "Ethena",
    "HYPE": "Hyperliquid",
}


def coin_name(symbol: str) -> str:
    return COIN_NAMES.get(symbol, symbol)


class CoinGeckoAdapter:
    def __init__(self, enabled: bool = True, timeout: float = 30.0, base_url: str = "https://api.coingecko.com/api/v3"):
        self.enabled = enabled
        self.timeout = timeout
        self.base_url = base_url.rstrip("/")

    def fetch_prices(self, symbols) -> dict[str, dict]:
        """{symbol: {price, change24h}} in USD. Symbols without a known CoinGecko id are left out."""
        if not self.enabled:
            return {}
        wanted = {s: SYMBOL_TO_ID[s] for s in symbols if s in SYMBOL_TO_ID}
        if not wanted:
            log.info("price_fetch_skipped", reason="no_known_ids", symbols=list(symbols))
            return {}
        try:
            resp = httpx.get(
                f"{self.base_url}/simple/price",
                params={
                    "ids": ",".join(sorted(set(wanted.values()))),
                    "vs_currencies": "usd",
                    "include_24hr_change": "true",
                },
                timeout=self.timeout,
            )
        except httpx.HTTPError as e:
            log.warning("price_fetch_failed", err=str(e))
            raise PriceFeedError(f"price request failed: {e}") from e
        if resp.status_code != 200:
            log.warning("price_fetch_failed", status=resp.status_code)
            raise PriceFeedError(f"coingecko_status_{resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise PriceFeedError("price response is not JSON") from e

        out = {}
        for symbol, coin_id in wanted.items():
            quote = data.get(coin_id)
            if not isinstance(quote, dict) or quote.get("usd") is None:
                continue
            out[symbol] = {"price": quote["usd"], "change24h": quote.get("usd_24h_change") or 0}
        return out
