"""Domain records for the portfolio ledger, snapshots and session history.

Wire format (storage and API) uses the camelCase keys the stored JSON has
always used; the dataclasses use snake_case attributes.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass, field, replace
from typing import Any, Literal

from ..utils import coerce_float

NOT_APPLICABLE = "N/A"


def holding_id(symbol: str, note: str) -> str:
    return f"{symbol}_{note or 'default'}"


@dataclass
class Holding:
    """One ledger line. Identity is (symbol, note)."""

    symbol: str
    amount: float
    purchase_price: float
    total_cost: float
    average_price: float
    note: str = ""
    id: str = ""

    def __post_init__(self):
        if not self.id:
            self.id = holding_id(self.symbol, self.note)

    def matches(self, symbol: str, note: str) -> bool:
        return self.symbol == symbol and self.note == (note or "")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "amount": self.amount,
            "purchasePrice": self.purchase_price,
            "totalCost": self.total_cost,
            "averagePrice": self.average_price,
            "note": self.note,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Holding":
        amount = coerce_float(data.get("amount"), 0.0)
        purchase_price = coerce_float(data.get("purchasePrice"), 0.0)
        total_cost = coerce_float(data.get("totalCost"))
        if total_cost is None:
            total_cost = amount * purchase_price
        average_price = coerce_float(data.get("averagePrice"))
        if average_price is None:
            average_price = (total_cost / amount) if amount else purchase_price
        return cls(
            symbol=str(data.get("symbol") or "").strip().upper(),
            amount=amount,
            purchase_price=purchase_price,
            total_cost=total_cost,
            average_price=average_price,
            note=str(data.get("note") or "").strip(),
            id=str(data.get("id") or ""),
        )


@dataclass(frozen=True)
class Transaction:
    id: str
    timestamp: str
    symbol: str
    amount: float
    purchase_price: float
    total_cost: float
    note: str
    type: Literal["buy", "sell"]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "symbol": self.symbol,
            "amount": self.amount,
            "purchasePrice": self.purchase_price,
            "totalCost": self.total_cost,
            "note": self.note,
            "type": self.type,
        }


@dataclass(frozen=True)
class Snapshot:
    """Immutable capture of the ledger plus derived totals at one moment."""

    id: str
    timestamp: str
    description: str
    portfolio: tuple[Holding, ...]
    crypto_data: dict[str, dict]
    projects: tuple[dict, ...]
    total_value: float
    total_cost: float
    total_pnl: float
    total_pnl_percent: float

    @classmethod
    def capture(
        cls,
        *,
        id: str,
        timestamp: str,
        description: str,
        holdings,
        crypto_data: dict,
        projects,
        total_value: float,
        total_cost: float,
        total_pnl: float,
        total_pnl_percent: float,
    ) -> "Snapshot":
        return cls(
            id=id,
            timestamp=timestamp,
            description=description,
            portfolio=tuple(replace(h) for h in holdings),
            crypto_data=copy.deepcopy(dict(crypto_data or {})),
            projects=tuple(copy.deepcopy(list(projects or []))),
            total_value=total_value,
            total_cost=total_cost,
            total_pnl=total_pnl,
            total_pnl_percent=total_pnl_percent,
        )

    def holdings_copy(self) -> list[Holding]:
        return [replace(h) for h in self.portfolio]

    def prices_copy(self) -> dict[str, dict]:
        return copy.deepcopy(self.crypto_data)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "description": self.description,
            "portfolio": [h.to_dict() for h in self.portfolio],
            "cryptoData": copy.deepcopy(self.crypto_data),
            "projects": copy.deepcopy(list(self.projects)),
            "totalValue": self.total_value,
            "totalCost": self.total_cost,
            "totalPnl": self.total_pnl,
            "totalPnlPercent": self.total_pnl_percent,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Snapshot":
        return cls.capture(
            id=str(data.get("id") or ""),
            timestamp=str(data.get("timestamp") or ""),
            description=data.get("description") or "Snapshot",
            holdings=[Holding.from_dict(h) for h in data.get("portfolio") or [] if isinstance(h, dict)],
            crypto_data=data.get("cryptoData") or {},
            projects=data.get("projects") or [],
            total_value=coerce_float(data.get("totalValue"), 0.0),
            total_cost=coerce_float(data.get("totalCost"), 0.0),
            total_pnl=coerce_float(data.get("totalPnl"), 0.0),
            total_pnl_percent=coerce_float(data.get("totalPnlPercent"), 0.0),
        )


@dataclass(frozen=True)
class HistoryEntry:
    timestamp: str
    total_value: float
    total_cost: float
    total_pnl: float
    total_pnl_percent: float | str
    portfolio: tuple[Holding, ...] = field(default_factory=tuple)
    description: str | None = None

    def to_dict(self, include_portfolio: bool = True) -> dict[str, Any]:
        out: dict[str, Any] = {
            "timestamp": self.timestamp,
            "totalValue": self.total_value,
            "totalCost": self.total_cost,
            "totalPnl": self.total_pnl,
            "totalPnlPercent": self.total_pnl_percent,
        }
        if self.description is not None:
            out["description"] = self.description
        if include_portfolio:
            out["portfolio"] = [h.to_dict() for h in self.portfolio]
        return out
