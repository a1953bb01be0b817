"""Trading cycle: the main orchestration loop around the ledger.

Lifecycle of ``TradingCycle.run``:
    1. Normalize and validate the decision batch (fatal on violation:
       nothing is executed and nothing is persisted).
    2. Execute each BUY/SELL decision, in batch order, through the brokerage.
    3. Apply stop-loss updates.
    4. Fetch current quotes for held and traded tickers.
    5. Apply the trade outcomes, recalculate totals, persist the snapshot.

``TradingCycle.sweep_stop_losses`` is the intraday job: it sells positions
whose stop-loss level was breached and books the fills through the same
ledger path.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from execution.brokers import BrokerageExecutor, MarketDataProvider
from ledger.service import LedgerService
from ledger.stop_loss import find_stop_loss_triggers
from ledger.validator import normalize_decision_batch, validate_decision_batch
from models.config import LedgerConfig
from models.decision import Decision, DecisionBatch
from models.market import Quote
from models.report import CycleReport
from models.trade import TradeOutcome

logger = logging.getLogger(__name__)


class TradingCycle:
    """Drives one decision batch from validation to a persisted snapshot."""

    def __init__(
        self,
        ledger: LedgerService,
        executor: BrokerageExecutor,
        market_data: MarketDataProvider,
        config: Optional[LedgerConfig] = None,
    ) -> None:
        self._ledger = ledger
        self._executor = executor
        self._market_data = market_data
        self._config = config or ledger.config

    async def run(self, raw_batch: Any) -> CycleReport:
        """Run one trading cycle for a decoded AI decision batch.

        Raises ``SchemaValidationError`` before any trade is attempted when
        the batch is malformed, and ``PersistenceError`` when the ledger
        cannot be read or written.
        """
        schema_version = self._config.schema_version
        normalized = normalize_decision_batch(raw_batch, schema_version=schema_version)
        batch = validate_decision_batch(normalized, schema_version=schema_version)
        logger.info(
            "Decision batch %s accepted: %d decision(s), %d stop-loss update(s)",
            batch.generated_at,
            len(batch.decisions),
            len(batch.stop_loss_updates),
        )

        outcomes = await self._execute_decisions(batch)

        stop_losses = None
        if batch.stop_loss_updates:
            stop_losses = await self._ledger.update_stop_losses(batch.stop_loss_updates)

        portfolio = await self._ledger.get_portfolio()
        tickers = set(portfolio.tickers) | {o.ticker for o in outcomes}
        prices = await self._fetch_prices(tickers)

        report = await self._ledger.update_portfolio(outcomes, prices)
        report.stop_losses = stop_losses
        logger.info("Trading cycle completed: %s", report.summary())
        return report

    async def sweep_stop_losses(self) -> CycleReport:
        """Sell every position whose low of day reached its stop-loss level."""
        portfolio = await self._ledger.get_portfolio()
        candidates = [p.ticker for p in portfolio.positions if p.stop_loss]
        if not candidates:
            logger.info("No positions have stop-loss levels set")
            return CycleReport(portfolio=portfolio)

        logger.info("Monitoring %d position(s) for stop-loss triggers", len(candidates))
        quotes = await self._fetch_quotes(candidates)
        triggers = find_stop_loss_triggers(portfolio, quotes)

        outcomes: list[TradeOutcome] = []
        for trigger in triggers:
            outcome = await self._execute(trigger.to_decision())
            if outcome.success and outcome.simulated:
                # Paper fills book at the stop level, not the later close.
                outcome = outcome.model_copy(update={"filled_price": trigger.execution_price})
            outcomes.append(outcome)

        prices = {ticker: quote.price for ticker, quote in quotes.items()}
        report = await self._ledger.update_portfolio(outcomes, prices)
        logger.info(
            "Stop-loss sweep completed: %d monitored, %d triggered, %d applied",
            len(candidates),
            len(triggers),
            report.applied,
        )
        return report

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _execute_decisions(self, batch: DecisionBatch) -> list[TradeOutcome]:
        outcomes: list[TradeOutcome] = []
        for decision in batch.decisions:
            if not decision.is_trade:
                logger.debug("Skipping HOLD decision for %s", decision.ticker)
                continue
            if decision.shares == 0:
                logger.info("Skipping %s %s: zero shares", decision.action.value, decision.ticker)
                continue
            outcomes.append(await self._execute(decision))
        return outcomes

    async def _execute(self, decision: Decision) -> TradeOutcome:
        """Execute *decision*; brokerage exceptions become unfilled outcomes."""
        logger.info("Executing %s order: %d %s", decision.action.value, decision.shares, decision.ticker)
        try:
            return await self._executor.execute(decision)
        except Exception as exc:
            logger.error("Trade execution failed for %s: %s", decision.ticker, exc)
            return TradeOutcome(
                ticker=decision.ticker,
                action=decision.action.value,
                shares=decision.shares,
                stop_loss=decision.stop_loss,
                success=False,
                reasoning=decision.reasoning,
                error=str(exc),
            )

    async def _fetch_quotes(self, tickers) -> dict[str, Quote]:
        try:
            return await self._market_data.get_quotes(sorted(tickers))
        except Exception as exc:
            logger.warning("Market data unavailable, keeping previous prices: %s", exc)
            return {}

    async def _fetch_prices(self, tickers) -> Optional[dict[str, float]]:
        if not tickers:
            return None
        quotes = await self._fetch_quotes(tickers)
        return {ticker: quote.price for ticker, quote in quotes.items()}
