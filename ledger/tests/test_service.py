"""Tests for LedgerService update cycles over an in-memory gateway."""

import asyncio

import pytest

from ledger.errors import PersistenceError
from ledger.gateway import InMemoryLedgerGateway
from ledger.service import LedgerService
from models.config import LedgerConfig
from models.decision import StopLossUpdate
from models.portfolio import Portfolio
from models.report import ErrorKind
from models.trade import TradeOutcome


def _outcome(action, ticker, shares, price, success=True, **kwargs) -> TradeOutcome:
    return TradeOutcome(
        ticker=ticker,
        action=action,
        shares=shares,
        filled_price=price if success else None,
        success=success,
        **kwargs,
    )


class FailingGateway(InMemoryLedgerGateway):
    """Reads fine, every snapshot write fails."""

    async def put_portfolio(self, portfolio):
        raise PersistenceError("Portfolio save error: table unavailable")


@pytest.fixture
def gateway() -> InMemoryLedgerGateway:
    return InMemoryLedgerGateway()


@pytest.fixture
def service(gateway) -> LedgerService:
    return LedgerService(gateway, LedgerConfig(starting_cash=1000.0))


class TestInitialisation:

    def test_empty_snapshot_created_lazily(self, service, gateway):
        portfolio = asyncio.run(service.get_portfolio())

        assert portfolio.cash == 1000.0
        assert portfolio.positions == []
        assert portfolio.total_value == 1000.0
        assert portfolio.last_updated is not None
        assert gateway.writes == 1

    def test_existing_snapshot_not_overwritten(self, service, gateway):
        asyncio.run(service.get_portfolio())
        asyncio.run(service.get_portfolio())
        assert gateway.writes == 1


class TestUpdatePortfolio:

    def test_outcomes_applied_in_order(self, service, gateway):
        report = asyncio.run(
            service.update_portfolio(
                [
                    _outcome("BUY", "ABCD", 10, 5.0, stop_loss=4.0, reasoning="entry"),
                    _outcome("BUY", "ABCD", 10, 7.0),
                    _outcome("SELL", "ABCD", 5, 8.0, reasoning="trim"),
                ]
            )
        )

        assert report.applied == 3
        assert report.skipped == 0
        position = report.portfolio.find_position("ABCD")
        assert position.shares == 15
        assert position.cost_basis == pytest.approx(90.0)
        assert report.portfolio.cash == pytest.approx(1000.0 - 120.0 + 40.0)
        assert [r.action for r in report.records] == ["BUY", "BUY", "SELL"]
        assert report.records[-1].pnl == pytest.approx(10.0)
        assert report.applications[-1].pnl == pytest.approx(10.0)

    def test_ledger_errors_skip_only_offending_trade(self, service):
        report = asyncio.run(
            service.update_portfolio(
                [
                    _outcome("BUY", "ABCD", 500, 5.0),
                    _outcome("SELL", "NOPE", 1, 5.0),
                    _outcome("BUY", "EFG", 10, 2.0),
                    _outcome("SELL", "EFG", 11, 2.0),
                ]
            )
        )

        assert report.applied == 1
        assert report.skipped == 3
        kinds = [a.error_kind for a in report.applications if a.status == "skipped"]
        assert kinds == [
            ErrorKind.INSUFFICIENT_FUNDS,
            ErrorKind.POSITION_NOT_FOUND,
            ErrorKind.INSUFFICIENT_SHARES,
        ]
        assert len(report.skip_reasons) == 3
        assert report.portfolio.tickers == ["EFG"]
        assert report.portfolio.cash == 980.0

    def test_failed_outcomes_counted_not_applied(self, service):
        report = asyncio.run(
            service.update_portfolio([_outcome("BUY", "ABCD", 10, 5.0, success=False, error="rejected")])
        )
        assert report.failed == 1
        assert report.applied == 0
        assert report.applications[0].message == "rejected"
        assert report.portfolio.cash == 1000.0

    def test_snapshot_persisted_even_when_all_trades_skipped(self, service, gateway):
        asyncio.run(service.get_portfolio())
        report = asyncio.run(service.update_portfolio([_outcome("SELL", "NOPE", 1, 5.0)]))

        assert report.skipped == 1
        assert gateway.writes == 2

    def test_prices_applied_before_totals(self, service, gateway):
        report = asyncio.run(
            service.update_portfolio([_outcome("BUY", "ABCD", 10, 5.0)], prices={"ABCD": 6.0})
        )
        portfolio = report.portfolio

        assert portfolio.find_position("ABCD").market_value == 60.0
        assert portfolio.equity == 60.0
        assert portfolio.total_value == 60.0 + 950.0
        assert asyncio.run(gateway.get_portfolio()) == portfolio

    def test_trade_records_persisted(self, service):
        asyncio.run(service.update_portfolio([_outcome("BUY", "ABCD", 10, 5.0), _outcome("SELL", "ABCD", 10, 6.0)]))
        history = asyncio.run(service.get_trading_history(days=1))

        assert [r.action for r in history] == ["SELL", "BUY"]
        assert history[0].pnl == pytest.approx(10.0)

    def test_persistence_error_propagates(self):
        service = LedgerService(FailingGateway(), LedgerConfig(starting_cash=1000.0))
        with pytest.raises(PersistenceError):
            asyncio.run(service.update_portfolio([]))

    @pytest.mark.parametrize(
        "bad, field",
        [
            (_outcome("BUY", "MID", 1, None), "filledPrice"),
            (_outcome("BUY", "abc", 1, 5.0), "ticker"),
            (_outcome("BUY", "MID", 1, 5.0, stop_loss=-2.0), "stopLoss"),
        ],
    )
    def test_malformed_fill_skipped_and_cycle_completes(self, service, gateway, bad, field):
        report = asyncio.run(
            service.update_portfolio(
                [_outcome("BUY", "AAA", 10, 5.0), bad, _outcome("BUY", "BBB", 10, 5.0)]
            )
        )

        assert report.applied == 2
        assert report.skipped == 1
        skipped = report.applications[1]
        assert skipped.error_kind == ErrorKind.SCHEMA_VALIDATION
        assert skipped.message.startswith(field)

        stored = asyncio.run(gateway.get_portfolio())
        assert stored.tickers == ["AAA", "BBB"]
        assert stored.cash == 900.0
        history = asyncio.run(service.get_trading_history(days=1))
        assert sorted(r.ticker for r in history) == ["AAA", "BBB"]

    def test_records_not_appended_when_snapshot_write_fails(self):
        gateway = FailingGateway(Portfolio.empty(1000.0))
        service = LedgerService(gateway, LedgerConfig(starting_cash=1000.0))

        with pytest.raises(PersistenceError):
            asyncio.run(service.update_portfolio([_outcome("BUY", "ABCD", 10, 5.0)]))
        assert asyncio.run(service.get_trading_history(days=1)) == []

    def test_applied_trades_carry_record_ids(self, service):
        report = asyncio.run(service.update_portfolio([_outcome("BUY", "ABCD", 10, 5.0)]))
        assert report.applications[0].record_id == report.records[0].id


class TestStopLosses:

    def test_updates_report_unmatched(self, service, gateway):
        asyncio.run(service.update_portfolio([_outcome("BUY", "ABCD", 10, 5.0, stop_loss=4.0)]))
        report = asyncio.run(
            service.update_stop_losses(
                [StopLossUpdate(ticker="ABCD", stop_loss=4.6), StopLossUpdate(ticker="GONE", stop_loss=1.0)]
            )
        )

        assert report.updated == ["ABCD"]
        assert report.unmatched == ["GONE"]
        stored = asyncio.run(gateway.get_portfolio())
        assert stored.find_position("ABCD").stop_loss == 4.6
        assert stored.tickers == ["ABCD"]


class TestViews:

    def test_refresh_prices(self, service):
        asyncio.run(service.update_portfolio([_outcome("BUY", "ABCD", 10, 5.0)]))
        portfolio = asyncio.run(service.refresh_prices({"ABCD": 4.0}))

        position = portfolio.find_position("ABCD")
        assert position.unrealized_pnl == pytest.approx(-10.0)
        assert position.unrealized_pnl_percent == pytest.approx(-20.0)
        assert portfolio.total_value == pytest.approx(990.0)

    def test_summary(self, service):
        asyncio.run(service.update_portfolio([_outcome("BUY", "ABCD", 10, 5.0, stop_loss=4.0)]))
        summary = asyncio.run(service.get_portfolio_summary())

        assert summary.cash == 950.0
        assert summary.total_value == 1000.0
        assert summary.positions[0].ticker == "ABCD"
        assert summary.positions[0].stop_loss == 4.0
        assert "buyPrice" in summary.model_dump(by_alias=True)["positions"][0]
