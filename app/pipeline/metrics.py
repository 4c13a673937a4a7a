from __future__ import annotations

from typing import Iterable, Mapping

from .models import NOT_APPLICABLE, Holding

SORT_COLUMNS = (
    "symbol",
    "amount",
    "currentPrice",
    "purchasePrice",
    "currentValue",
    "valuePercent",
    "pnl",
    "pnlPercent",
)
DEFAULT_SORT = ("currentValue", "desc")


def price_of(prices: Mapping[str, dict] | None, symbol: str) -> float:
    quote = (prices or {}).get(symbol)
    if not isinstance(quote, Mapping):
        return 0.0
    try:
        return float(quote.get("price") or 0.0)
    except (TypeError, ValueError):
        return 0.0


def change_24h_of(prices: Mapping[str, dict] | None, symbol: str) -> float:
    quote = (prices or {}).get(symbol)
    if not isinstance(quote, Mapping):
        return 0.0
    try:
        return float(quote.get("change24h") or 0.0)
    except (TypeError, ValueError):
        return 0.0


def current_value(holding: Holding, prices: Mapping[str, dict] | None) -> float:
    return holding.amount * price_of(prices, holding.symbol)


def total_value(holdings: Iterable[Holding], prices: Mapping[str, dict] | None) -> float:
    return sum((current_value(h, prices) for h in holdings), 0.0)


def holdings_cost(holdings: Iterable[Holding]) -> float:
    return sum((h.total_cost for h in holdings), 0.0)


def aggregate_cost(holdings: Iterable[Holding], override: float | None = None) -> float:
    if override is not None:
        return float(override)
    return holdings_cost(holdings)


def pnl_percent(value: float, cost: float) -> float | str:
    """Return P&L as a percentage of cost, or the "N/A" sentinel when there is no cost basis."""
    if cost > 0:
        return (value - cost) / cost * 100
    return NOT_APPLICABLE


def numeric_pnl_percent(value: float, cost: float) -> float:
    pct = pnl_percent(value, cost)
    return 0.0 if pct == NOT_APPLICABLE else pct


def percent_of_total(value: float, total: float) -> float:
    return (value / total * 100) if total > 0 else 0.0


def portfolio_totals(
    holdings: Iterable[Holding],
    prices: Mapping[str, dict] | None,
    override: float | None = None,
) -> dict:
    holdings = list(holdings)
    value = total_value(holdings, prices)
    cost = aggregate_cost(holdings, override)
    return {
        "totalValue": value,
        "totalCost": cost,
        "totalPnl": value - cost,
        "totalPnlPercent": pnl_percent(value, cost),
        "costOverride": override,
    }


def holding_rows(holdings: Iterable[Holding], prices: Mapping[str, dict] | None) -> list[dict]:
    holdings = list(holdings)
    portfolio_value = total_value(holdings, prices)
    rows = []
    for h in holdings:
        price = price_of(prices, h.symbol)
        value = h.amount * price
        rows.append(
            {
                **h.to_dict(),
                "currentPrice": price,
                "change24h": change_24h_of(prices, h.symbol),
                "currentValue": value,
                "valuePercent": percent_of_total(value, portfolio_value),
                "pnl": value - h.total_cost,
                "pnlPercent": pnl_percent(value, h.total_cost),
            }
        )
    return rows


def _sort_value(row: dict, column: str):
    if column == "symbol":
        return row["symbol"]
    if column == "purchasePrice":
        return row["averagePrice"]
    val = row[column]
    return 0.0 if val == NOT_APPLICABLE else val


def sort_rows(rows: list[dict], column: str, order: str = "asc") -> list[dict]:
    if column not in SORT_COLUMNS:
        raise ValueError(f"sort column must be one of {', '.join(SORT_COLUMNS)}")
    if order not in ("asc", "desc"):
        raise ValueError("sort order must be asc|desc")
    return sorted(rows, key=lambda r: _sort_value(r, column), reverse=(order == "desc"))


def summarize(
    holdings: Iterable[Holding],
    prices: Mapping[str, dict] | None,
    override: float | None = None,
    sort: str | None = None,
    order: str | None = None,
) -> dict:
    holdings = list(holdings)
    column, direction = sort or DEFAULT_SORT[0], order or DEFAULT_SORT[1]
    rows = sort_rows(holding_rows(holdings, prices), column, direction)
    return {
        "holdings": rows,
        "totals": portfolio_totals(holdings, prices, override),
        "count": len(rows),
        "sort": {"column": column, "order": direction},
    }
