import structlog

from ..errors import ValidationError
from ..utils import coerce_float, epoch_millis_id, now_utc_iso
from .models import Transaction

log = structlog.get_logger()

TRANSACTIONS_KEY = "transactions"
TX_TYPES = {"buy", "sell"}


class TransactionLog:
    """Append-only buy/sell history kept under the `transactions` key."""

    def __init__(self, store):
        self.store = store

    def all(self) -> list[dict]:
        rows = self.store.get(TRANSACTIONS_KEY, [])
        return rows if isinstance(rows, list) else []

    def record(self, symbol: str, amount: float, price: float, note: str, tx_type: str) -> Transaction:
        tx = Transaction(
            id=epoch_millis_id(),
            timestamp=now_utc_iso(),
            symbol=symbol,
            amount=amount,
            purchase_price=price,
            total_cost=amount * price,
            note=note or "",
            type=tx_type,
        )
        self._append(tx.to_dict())
        log.info("transaction_recorded", symbol=symbol, type=tx_type, amount=amount, price=price)
        return tx

    def append_raw(self, payload: dict) -> dict:
        """Append a client-supplied transaction, filling defaults for missing fields."""
        symbol = payload.get("symbol")
        amount = coerce_float(payload.get("amount"))
        price = coerce_float(payload.get("purchasePrice"))
        if not symbol or not amount or price is None:
            raise ValidationError("Invalid transaction data")
        total_cost = coerce_float(payload.get("totalCost"))
        tx_type = payload.get("type") or "buy"
        if tx_type not in TX_TYPES:
            raise ValidationError("type must be buy|sell")
        row = {
            "id": str(payload.get("id") or epoch_millis_id()),
            "timestamp": payload.get("timestamp") or now_utc_iso(),
            "symbol": str(symbol).upper(),
            "amount": amount,
            "purchasePrice": price,
            "totalCost": amount * price if total_cost is None else total_cost,
            "note": payload.get("note") or "",
            "type": tx_type,
        }
        self._append(row)
        return row

    def _append(self, row: dict):
        rows = self.all()
        rows.append(row)
        self.store.set(TRANSACTIONS_KEY, rows)
