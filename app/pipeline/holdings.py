import math
from dataclasses import replace
from typing import Iterable, Mapping

import structlog

from ..errors import ValidationError
from ..utils import coerce_float
from .metrics import aggregate_cost, holdings_cost, price_of
from .models import Holding

log = structlog.get_logger()


def _clean_number(val) -> float | None:
    num = coerce_float(val)
    if num is None or math.isnan(num):
        return None
    return num


class Ledger:
    """Live holdings plus the optional ledger-wide cost override.

    Buys and sells are written to the transaction log as they happen; persisting
    the holdings themselves is the session's job.
    """

    def __init__(self, holdings: Iterable[Holding] | None = None, cost_override: float | None = None, transactions=None):
        self.holdings: list[Holding] = [replace(h) for h in holdings or []]
        self.cost_override = cost_override
        self.transactions = transactions

    def __len__(self):
        return len(self.holdings)

    @property
    def is_empty(self) -> bool:
        return not self.holdings

    def find(self, symbol: str, note: str = "") -> Holding | None:
        for h in self.holdings:
            if h.matches(symbol, note):
                return h
        return None

    def add_or_merge(self, symbol, amount, purchase_price, note: str = "") -> Holding:
        symbol = str(symbol or "").strip().upper()
        note = str(note or "").strip()
        amount = _clean_number(amount)
        purchase_price = _clean_number(purchase_price)
        if not symbol or not amount or purchase_price is None:
            raise ValidationError("Please fill in all required fields.")
        if amount <= 0 or purchase_price < 0:
            raise ValidationError("Amount must be positive and purchase price cannot be negative.")

        lot_cost = amount * purchase_price
        holding = self.find(symbol, note)
        if holding:
            holding.amount += amount
            holding.total_cost += lot_cost
            holding.average_price = holding.total_cost / holding.amount
            holding.purchase_price = holding.average_price
            log.info("holding_merged", symbol=symbol, note=note, amount=holding.amount, average_price=holding.average_price)
        else:
            holding = Holding(
                symbol=symbol,
                amount=amount,
                purchase_price=purchase_price,
                total_cost=lot_cost,
                average_price=purchase_price,
                note=note,
            )
            self.holdings.append(holding)
            log.info("holding_added", symbol=symbol, note=note, amount=amount, purchase_price=purchase_price)

        if self.transactions is not None:
            self.transactions.record(symbol, amount, purchase_price, note, "buy")
        return holding

    def remove(self, symbol, note: str = "", prices: Mapping[str, dict] | None = None) -> Holding | None:
        symbol = str(symbol or "").strip().upper()
        note = str(note or "").strip()
        holding = self.find(symbol, note)
        if holding is None:
            log.info("holding_remove_noop", symbol=symbol, note=note)
            return None
        self.holdings = [h for h in self.holdings if not h.matches(symbol, note)]
        # Sell proceeds fall back to cost basis when no live price is known.
        sell_price = price_of(prices, symbol) or holding.average_price
        if self.transactions is not None:
            self.transactions.record(symbol, holding.amount, sell_price, note, "sell")
        log.info("holding_removed", symbol=symbol, note=note, amount=holding.amount, sell_price=sell_price)
        return holding

    def clear(self):
        count = len(self.holdings)
        self.holdings = []
        log.info("ledger_cleared", removed=count)

    def replace(self, holdings: Iterable[Holding]):
        self.holdings = [replace(h) for h in holdings]

    def set_cost_override(self, value) -> float:
        if self.is_empty:
            raise ValidationError("Cannot set total cost: Portfolio is empty")
        value = _clean_number(value)
        if value is None:
            raise ValidationError("Please enter a valid total cost amount")
        if value < 0:
            raise ValidationError("Total cost cannot be negative")
        self.cost_override = value
        log.info("cost_override_set", total_cost=value)
        return value

    def reset_cost_override(self) -> float:
        if self.is_empty:
            raise ValidationError("Cannot reset total cost: Portfolio is empty")
        self.cost_override = None
        cost = holdings_cost(self.holdings)
        log.info("cost_override_reset", total_cost=cost)
        return cost

    def total_cost(self) -> float:
        return aggregate_cost(self.holdings, self.cost_override)

    def to_list(self) -> list[dict]:
        return [h.to_dict() for h in self.holdings]

    @classmethod
    def from_list(cls, rows, cost_override: float | None = None, transactions=None) -> "Ledger":
        holdings = [Holding.from_dict(r) for r in rows or [] if isinstance(r, dict)]
        return cls(holdings, cost_override=cost_override, transactions=transactions)
