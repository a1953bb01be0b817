"""Ledger service: runs update cycles against a ``LedgerGateway``.

One update cycle reads the snapshot, applies trade outcomes one at a time in
the order supplied, recalculates totals, and writes the snapshot back. Ledger
invariant errors and malformed fills skip only the offending trade;
``PersistenceError`` aborts the cycle and propagates unchanged.

The service holds no lock. Callers must guarantee that at most one cycle
runs against a given gateway at a time.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, Mapping, Optional

from ledger.applier import apply_trade
from ledger.errors import TRADE_ERRORS, LedgerError, SchemaValidationError
from ledger.gateway import LedgerGateway
from ledger.stop_loss import apply_stop_loss_updates, unmatched_stop_loss_tickers
from ledger.totals import apply_market_prices, recalculate_totals
from models.config import LedgerConfig
from models.decision import StopLossUpdate
from models.portfolio import Portfolio, PortfolioSummary
from models.report import CycleReport, StopLossReport, TradeApplication
from models.trade import TradeOutcome, TradeRecord

logger = logging.getLogger(__name__)

# A malformed fill skips only that trade.
SKIPPABLE_ERRORS = TRADE_ERRORS + (SchemaValidationError,)


class LedgerService:
    """Portfolio ledger bound to one gateway and configuration."""

    def __init__(self, gateway: LedgerGateway, config: Optional[LedgerConfig] = None) -> None:
        self._gateway = gateway
        self._config = config or LedgerConfig()

    @property
    def config(self) -> LedgerConfig:
        return self._config

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    async def get_portfolio(self) -> Portfolio:
        """Return the stored snapshot, creating and persisting an empty one if absent."""
        portfolio = await self._gateway.get_portfolio()
        if portfolio is None:
            portfolio = Portfolio.empty(self._config.starting_cash, last_updated=_now_iso())
            logger.info("No portfolio found, initialising with $%.2f cash", portfolio.cash)
            await self._gateway.put_portfolio(portfolio)
            return portfolio

        logger.debug(
            "Portfolio retrieved: total $%.2f, cash $%.2f, %d position(s)",
            portfolio.total_value,
            portfolio.cash,
            len(portfolio.positions),
        )
        return portfolio

    async def get_portfolio_summary(self) -> PortfolioSummary:
        return PortfolioSummary.from_portfolio(await self.get_portfolio())

    # ------------------------------------------------------------------
    # Update cycle
    # ------------------------------------------------------------------

    async def update_portfolio(
        self,
        outcomes: Iterable[TradeOutcome],
        prices: Optional[Mapping[str, float]] = None,
    ) -> CycleReport:
        """Apply *outcomes* in order, recalculate, and persist the snapshot.

        The snapshot is written even when every trade was failed or skipped.
        Trade records are appended only after the snapshot that reflects
        them has been written.
        """
        outcomes = list(outcomes)
        logger.info("Updating portfolio with %d trade result(s)", len(outcomes))

        portfolio = await self.get_portfolio()
        report = CycleReport()
        booked: list[TradeApplication] = []

        for outcome in outcomes:
            if not outcome.success:
                logger.warning("Skipping failed trade for %s: %s", outcome.ticker, outcome.error or "not filled")
                report.applications.append(_application(outcome, "failed", message=outcome.error or ""))
                continue

            try:
                result = apply_trade(portfolio, outcome)
            except SKIPPABLE_ERRORS as exc:
                logger.warning("Skipping %s %s: %s", outcome.action, outcome.ticker, exc)
                report.applications.append(
                    _application(outcome, "skipped", error=exc, message=str(exc))
                )
                continue

            portfolio = result.portfolio
            application = _application(outcome, "applied", pnl=result.realized_pnl)
            report.records.append(result.record)
            report.applications.append(application)
            booked.append(application)

        portfolio = await self._finalize(portfolio, prices)
        report.portfolio = portfolio

        for record, application in zip(report.records, booked):
            application.record_id = await self._gateway.append_trade_record(record)

        logger.info(
            "Portfolio updated: %d applied, %d skipped, %d failed; total $%.2f, cash $%.2f",
            report.applied,
            report.skipped,
            report.failed,
            portfolio.total_value,
            portfolio.cash,
        )
        return report

    async def refresh_prices(self, prices: Mapping[str, float]) -> Portfolio:
        """Stamp current prices on held positions, recalculate, and persist."""
        portfolio = await self.get_portfolio()
        if not portfolio.positions:
            logger.info("No positions to update")
        return await self._finalize(portfolio, prices)

    async def update_stop_losses(self, updates: Iterable[StopLossUpdate]) -> StopLossReport:
        """Overwrite stop-loss levels of held positions and persist.

        Updates for tickers that are not held are reported, not raised.
        """
        updates = list(updates)
        logger.info("Updating stop losses for %d position(s)", len(updates))

        portfolio = await self.get_portfolio()
        unmatched = unmatched_stop_loss_tickers(portfolio, updates)
        for ticker in unmatched:
            logger.warning("Stop-loss update for %s ignored: no position held", ticker)

        portfolio = apply_stop_loss_updates(portfolio, updates)
        await self._gateway.put_portfolio(portfolio)

        return StopLossReport(
            updated=[u.ticker for u in updates if u.ticker not in unmatched],
            unmatched=unmatched,
        )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    async def get_trading_history(self, days: Optional[int] = None) -> list[TradeRecord]:
        """Trade records from the last *days* days, newest first."""
        days = days if days is not None else self._config.history_days
        since = datetime.now(timezone.utc) - timedelta(days=days)
        records = await self._gateway.query_trade_records(since)
        logger.info("Retrieved %d trade(s) from the last %d day(s)", len(records), days)
        return records

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _finalize(self, portfolio: Portfolio, prices: Optional[Mapping[str, float]]) -> Portfolio:
        if prices:
            portfolio = apply_market_prices(portfolio, prices)
        portfolio = recalculate_totals(portfolio)
        portfolio = portfolio.model_copy(update={"last_updated": _now_iso()})
        await self._gateway.put_portfolio(portfolio)
        return portfolio


def _application(
    outcome: TradeOutcome,
    status: str,
    *,
    error: Optional[LedgerError] = None,
    message: str = "",
    record_id: Optional[str] = None,
    pnl: Optional[float] = None,
) -> TradeApplication:
    return TradeApplication(
        ticker=outcome.ticker,
        action=outcome.action,
        shares=outcome.shares,
        status=status,
        error_kind=error.kind if error is not None else None,
        message=message,
        record_id=record_id,
        pnl=pnl,
    )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
