"""
Tests for decision batch normalization and validation.

Covers:
  1. Top-level batch shape (object, version, generatedAt, decisions array)
  2. Per-decision field constraints, first violation wins
  3. Stop-loss update entries
  4. Normalization fills defaults without mutating input
  5. Successful validation produces typed values
"""

import copy
from datetime import datetime, timezone

import pytest

from ledger.errors import SchemaValidationError
from ledger.validator import normalize_decision_batch, validate_decision_batch
from models.decision import Action, DecisionBatch, OrderType, TimeInForce
from models.report import ErrorKind


# =============================================================================
# FIXTURES
# =============================================================================


def _batch(*decisions, stop_loss_updates=None) -> dict:
    return {
        "version": "2.0",
        "generatedAt": "2025-03-15T16:00:00Z",
        "decisions": list(decisions),
        "stopLossUpdates": stop_loss_updates or [],
    }


@pytest.fixture
def valid_batch() -> dict:
    return _batch(
        {
            "action": "BUY",
            "ticker": "ABCD",
            "shares": 10,
            "orderType": "limit",
            "limitPrice": 4.25,
            "timeInForce": "day",
            "stopLoss": 3.5,
            "reasoning": "Earnings beat, volume surge",
            "confidence": 0.7,
        },
        {"action": "SELL", "ticker": "XYZ-W", "shares": 5, "orderType": "market"},
        {"action": "HOLD", "ticker": "QRS", "shares": 0},
        stop_loss_updates=[{"ticker": "QRS", "stopLoss": 2.1}],
    )


def _rejection(batch) -> SchemaValidationError:
    with pytest.raises(SchemaValidationError) as excinfo:
        validate_decision_batch(batch)
    return excinfo.value


# =============================================================================
# 1. BATCH SHAPE
# =============================================================================


class TestBatchShape:

    @pytest.mark.parametrize("raw", [None, [], "batch", 42])
    def test_non_object_rejected(self, raw):
        err = _rejection(raw)
        assert err.expected == "object"
        assert err.kind == ErrorKind.SCHEMA_VALIDATION

    def test_wrong_version_rejected(self, valid_batch):
        valid_batch["version"] = "1.0"
        err = _rejection(valid_batch)
        assert err.field == "version"
        assert err.expected == "2.0"
        assert err.actual == "1.0"

    def test_missing_version_rejected(self, valid_batch):
        del valid_batch["version"]
        assert _rejection(valid_batch).field == "version"

    def test_custom_schema_version(self, valid_batch):
        valid_batch["version"] = "3.1"
        batch = validate_decision_batch(valid_batch, schema_version="3.1")
        assert batch.version == "3.1"

    def test_missing_generated_at_rejected(self, valid_batch):
        del valid_batch["generatedAt"]
        assert _rejection(valid_batch).field == "generatedAt"

    @pytest.mark.parametrize("decisions", [None, {"action": "BUY"}, "BUY AAPL"])
    def test_decisions_not_a_list_rejected(self, valid_batch, decisions):
        valid_batch["decisions"] = decisions
        err = _rejection(valid_batch)
        assert err.path == "decisions"

    def test_empty_decisions_accepted(self):
        batch = validate_decision_batch(_batch())
        assert batch.decisions == []
        assert batch.stop_loss_updates == []


# =============================================================================
# 2. DECISION FIELDS
# =============================================================================


class TestDecisionFields:

    def test_trailing_newline_ticker_rejected(self):
        err = _rejection(_batch({"action": "SELL", "ticker": "AAPL\n", "shares": 5}))
        assert err.field == "ticker"

    def test_lowercase_ticker_rejected(self):
        err = _rejection(_batch({"action": "BUY", "ticker": "aapl", "shares": 5, "stopLoss": 1.0}))
        assert err.path == "decisions[0].ticker"
        assert err.actual == "aapl"

    def test_negative_shares_rejected(self):
        err = _rejection(_batch({"action": "BUY", "ticker": "AAPL", "shares": -1, "stopLoss": 1.0}))
        assert err.field == "shares"
        assert err.actual == -1

    def test_limit_without_limit_price_rejected(self):
        err = _rejection(
            _batch({"action": "BUY", "ticker": "AAPL", "shares": 5, "orderType": "limit", "stopLoss": 1.0})
        )
        assert err.field == "limitPrice"

    def test_buy_without_stop_loss_rejected(self):
        err = _rejection(_batch({"action": "BUY", "ticker": "AAPL", "shares": 5}))
        assert err.field == "stopLoss"
        assert err.index == 0

    def test_sell_without_stop_loss_accepted(self):
        batch = validate_decision_batch(_batch({"action": "SELL", "ticker": "AAPL", "shares": 5}))
        assert batch.decisions[0].stop_loss is None

    @pytest.mark.parametrize("missing", ["action", "ticker", "shares"])
    def test_required_fields(self, missing):
        decision = {"action": "SELL", "ticker": "AAPL", "shares": 5}
        del decision[missing]
        err = _rejection(_batch(decision))
        assert err.field == missing
        assert err.expected == "present"

    def test_invalid_action_rejected(self):
        err = _rejection(_batch({"action": "RESEARCH", "ticker": "AAPL", "shares": 0}))
        assert err.field == "action"
        assert "HOLD" in err.expected

    @pytest.mark.parametrize("shares", [2.5, "5", True])
    def test_non_integer_shares_rejected(self, shares):
        err = _rejection(_batch({"action": "SELL", "ticker": "AAPL", "shares": shares}))
        assert err.field == "shares"

    def test_integral_float_shares_coerced(self):
        batch = validate_decision_batch(_batch({"action": "SELL", "ticker": "AAPL", "shares": 5.0}))
        assert batch.decisions[0].shares == 5
        assert isinstance(batch.decisions[0].shares, int)

    def test_invalid_order_type_rejected(self):
        err = _rejection(_batch({"action": "SELL", "ticker": "AAPL", "shares": 1, "orderType": "stop"}))
        assert err.field == "orderType"

    def test_non_positive_limit_price_rejected(self):
        err = _rejection(
            _batch({"action": "SELL", "ticker": "AAPL", "shares": 1, "orderType": "limit", "limitPrice": 0})
        )
        assert err.field == "limitPrice"

    def test_invalid_time_in_force_rejected(self):
        err = _rejection(_batch({"action": "SELL", "ticker": "AAPL", "shares": 1, "timeInForce": "ioc"}))
        assert err.field == "timeInForce"

    @pytest.mark.parametrize("confidence", [-0.1, 1.5, "high"])
    def test_confidence_out_of_range_rejected(self, confidence):
        err = _rejection(_batch({"action": "HOLD", "ticker": "AAPL", "shares": 0, "confidence": confidence}))
        assert err.field == "confidence"

    @pytest.mark.parametrize("confidence", [0, 1, 0.5])
    def test_confidence_bounds_accepted(self, confidence):
        batch = validate_decision_batch(
            _batch({"action": "HOLD", "ticker": "AAPL", "shares": 0, "confidence": confidence})
        )
        assert batch.decisions[0].confidence == confidence

    def test_non_object_decision_rejected(self):
        err = _rejection(_batch("BUY AAPL"))
        assert err.path == "decisions[0]"

    def test_first_violation_wins(self):
        err = _rejection(
            _batch(
                {"action": "SELL", "ticker": "AAPL", "shares": 1},
                {"action": "BUY", "ticker": "msft", "shares": -3},
                {"action": "FLY", "ticker": "GOOG", "shares": 1},
            )
        )
        assert err.index == 1
        assert err.field == "ticker"
        assert str(err).startswith("decisions[1].ticker")


# =============================================================================
# 3. STOP-LOSS UPDATES
# =============================================================================


class TestStopLossUpdates:

    def test_missing_stop_loss_rejected(self):
        err = _rejection(_batch(stop_loss_updates=[{"ticker": "AAPL"}]))
        assert err.path == "stopLossUpdates[0].stopLoss"

    def test_bad_ticker_rejected(self):
        err = _rejection(_batch(stop_loss_updates=[{"ticker": "aapl", "stopLoss": 1.0}]))
        assert err.path == "stopLossUpdates[0].ticker"

    def test_non_positive_stop_loss_rejected(self):
        err = _rejection(
            _batch(stop_loss_updates=[{"ticker": "AAPL", "stopLoss": 1.0}, {"ticker": "MSFT", "stopLoss": 0}])
        )
        assert err.index == 1
        assert err.field == "stopLoss"

    def test_stop_loss_updates_not_a_list_rejected(self, valid_batch):
        valid_batch["stopLossUpdates"] = {"ticker": "AAPL", "stopLoss": 1.0}
        assert _rejection(valid_batch).path == "stopLossUpdates"

    def test_absent_stop_loss_updates_is_empty(self, valid_batch):
        del valid_batch["stopLossUpdates"]
        assert validate_decision_batch(valid_batch).stop_loss_updates == []


# =============================================================================
# 4. NORMALIZATION
# =============================================================================


class TestNormalize:

    def test_fills_version_and_generated_at(self):
        now = datetime(2025, 3, 15, 16, 0, tzinfo=timezone.utc)
        raw = {"decisions": []}
        normalized = normalize_decision_batch(raw, schema_version="2.0", now=now)
        assert normalized["version"] == "2.0"
        assert normalized["generatedAt"] == now.isoformat()
        assert normalized["stopLossUpdates"] == []
        assert raw == {"decisions": []}

    def test_keeps_existing_values(self, valid_batch):
        normalized = normalize_decision_batch(valid_batch)
        assert normalized["version"] == "2.0"
        assert normalized["generatedAt"] == "2025-03-15T16:00:00Z"

    def test_non_object_passed_through(self):
        assert normalize_decision_batch(["x"]) == ["x"]

    def test_normalize_does_not_make_bad_version_valid(self, valid_batch):
        valid_batch["version"] = "1.0"
        with pytest.raises(SchemaValidationError):
            validate_decision_batch(normalize_decision_batch(valid_batch))


# =============================================================================
# 5. TYPED RESULT
# =============================================================================


class TestTypedResult:

    def test_valid_batch_produces_typed_values(self, valid_batch):
        original = copy.deepcopy(valid_batch)
        batch = validate_decision_batch(valid_batch)

        assert isinstance(batch, DecisionBatch)
        assert valid_batch == original
        buy = batch.decisions[0]
        assert buy.action is Action.BUY
        assert buy.order_type is OrderType.LIMIT
        assert buy.time_in_force is TimeInForce.DAY
        assert buy.limit_price == 4.25
        assert buy.stop_loss == 3.5
        assert batch.stop_loss_updates[0].stop_loss == 2.1
        assert [d.ticker for d in batch.trades] == ["ABCD", "XYZ-W"]
