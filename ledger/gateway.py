"""Ledger gateway: persistence of the portfolio snapshot and trade records.

The snapshot is read and overwritten wholesale; trade records are
append-only. Gateways perform no locking: at most one update cycle may run
at a time, and the scheduler is responsible for guaranteeing that.

Every storage failure surfaces as ``PersistenceError`` with the original
exception chained.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from pydantic import ValidationError

from ledger.errors import PersistenceError
from models.portfolio import Portfolio
from models.trade import TradeRecord

logger = logging.getLogger(__name__)


class LedgerGateway(Protocol):
    """Keyed store holding one portfolio snapshot and the trade log."""

    async def get_portfolio(self) -> Optional[Portfolio]:
        """Return the stored snapshot, or ``None`` if none was ever written."""

    async def put_portfolio(self, portfolio: Portfolio) -> None:
        """Overwrite the stored snapshot."""

    async def append_trade_record(self, record: TradeRecord) -> str:
        """Append *record* and return its id."""

    async def query_trade_records(self, since: datetime) -> list[TradeRecord]:
        """Records dated at or after *since*, newest first."""


# ------------------------------------------------------------------
# In-memory
# ------------------------------------------------------------------

class InMemoryLedgerGateway:
    """Process-local gateway for paper runs and tests."""

    def __init__(self, portfolio: Optional[Portfolio] = None) -> None:
        self._portfolio = portfolio.model_copy(deep=True) if portfolio else None
        self._records: dict[str, TradeRecord] = {}
        self.writes = 0

    async def get_portfolio(self) -> Optional[Portfolio]:
        if self._portfolio is None:
            return None
        return self._portfolio.model_copy(deep=True)

    async def put_portfolio(self, portfolio: Portfolio) -> None:
        self._portfolio = portfolio.model_copy(deep=True)
        self.writes += 1

    async def append_trade_record(self, record: TradeRecord) -> str:
        if record.id in self._records:
            raise PersistenceError(f"Trade record {record.id} already exists.")
        self._records[record.id] = record
        return record.id

    async def query_trade_records(self, since: datetime) -> list[TradeRecord]:
        return _newest_first(self._records.values(), since)


# ------------------------------------------------------------------
# JSON files
# ------------------------------------------------------------------

class JsonFileLedgerGateway:
    """Stores the snapshot in ``portfolio.json`` and trades in ``trades.jsonl``.

    The snapshot is written to a temporary file and renamed into place so a
    crashed write never leaves a truncated snapshot behind. Existing record
    ids are read from ``trades.jsonl`` on the first append and tracked in
    memory afterwards; under the single-writer contract no other process
    appends to the same directory meanwhile.
    """

    PORTFOLIO_FILE = "portfolio.json"
    TRADES_FILE = "trades.jsonl"

    def __init__(self, data_dir: str | Path) -> None:
        self._data_dir = Path(data_dir)
        self._portfolio_path = self._data_dir / self.PORTFOLIO_FILE
        self._trades_path = self._data_dir / self.TRADES_FILE
        self._record_ids: Optional[set[str]] = None

    @property
    def data_dir(self) -> Path:
        return self._data_dir

    async def get_portfolio(self) -> Optional[Portfolio]:
        if not self._portfolio_path.exists():
            return None
        try:
            raw = json.loads(self._portfolio_path.read_text(encoding="utf-8"))
            return Portfolio.model_validate(raw)
        except (OSError, ValueError, ValidationError) as exc:
            raise PersistenceError(f"Portfolio fetch error: {exc}") from exc

    async def put_portfolio(self, portfolio: Portfolio) -> None:
        tmp_path = self._portfolio_path.with_suffix(".json.tmp")
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            _write_json(tmp_path, portfolio.model_dump(by_alias=True, mode="json"))
            tmp_path.replace(self._portfolio_path)
        except OSError as exc:
            raise PersistenceError(f"Portfolio save error: {exc}") from exc
        logger.debug("Portfolio saved to %s", self._portfolio_path)

    async def append_trade_record(self, record: TradeRecord) -> str:
        if self._record_ids is None:
            self._record_ids = {r.id for r in self._read_records()}
        if record.id in self._record_ids:
            raise PersistenceError(f"Trade record {record.id} already exists.")
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            with self._trades_path.open("a", encoding="utf-8") as fh:
                fh.write(record.model_dump_json(by_alias=True) + "\n")
        except OSError as exc:
            raise PersistenceError(f"Trade save error: {exc}") from exc
        self._record_ids.add(record.id)
        logger.debug("Trade saved: %s", record.id)
        return record.id

    async def query_trade_records(self, since: datetime) -> list[TradeRecord]:
        return _newest_first(self._read_records(), since)

    def _read_records(self) -> list[TradeRecord]:
        if not self._trades_path.exists():
            return []
        records: list[TradeRecord] = []
        try:
            with self._trades_path.open(encoding="utf-8") as fh:
                for line in fh:
                    line = line.strip()
                    if not line:
                        continue
                    records.append(TradeRecord.model_validate(json.loads(line)))
        except (OSError, ValueError, ValidationError) as exc:
            raise PersistenceError(f"Trading history fetch error: {exc}") from exc
        return records


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------

def _newest_first(records, since: datetime) -> list[TradeRecord]:
    cutoff = _as_utc(since)
    selected = [r for r in records if _as_utc(datetime.fromisoformat(r.date)) >= cutoff]
    return sorted(selected, key=lambda r: (_as_utc(datetime.fromisoformat(r.date)), r.id), reverse=True)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _write_json(path: Path, data) -> None:
    """Write *data* as pretty-printed JSON to *path*."""
    path.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
