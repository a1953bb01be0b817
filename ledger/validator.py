"""Decision batch normalization and validation.

Two explicit, ordered steps:

1. ``normalize_decision_batch`` fills defaults the AI is allowed to omit
   (``version``, ``generatedAt``, ``stopLossUpdates``). It never rejects.
2. ``validate_decision_batch`` rejects on the first violated constraint and
   returns a typed ``DecisionBatch`` on success. Violations are not
   accumulated: the first one aborts the whole batch.

Neither step mutates its input.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from ledger.errors import SchemaValidationError
from models.config import DEFAULT_SCHEMA_VERSION
from models.decision import Action, DecisionBatch, OrderType, TimeInForce

TICKER_PATTERN = re.compile(r"^[A-Z0-9-]+$")

VALID_ACTIONS = tuple(a.value for a in Action)
VALID_ORDER_TYPES = tuple(o.value for o in OrderType)
VALID_TIME_IN_FORCE = tuple(t.value for t in TimeInForce)

REQUIRED_DECISION_FIELDS = ("action", "ticker", "shares")
REQUIRED_STOP_LOSS_FIELDS = ("ticker", "stopLoss")


# ------------------------------------------------------------------
# Normalize
# ------------------------------------------------------------------

def normalize_decision_batch(
    raw: Any,
    *,
    schema_version: str = DEFAULT_SCHEMA_VERSION,
    now: Optional[datetime] = None,
) -> Any:
    """Return a copy of *raw* with omitted top-level defaults filled in.

    Non-mapping input is returned unchanged so that validation rejects it.
    """
    if not isinstance(raw, Mapping):
        return raw

    normalized = dict(raw)
    if not normalized.get("version"):
        normalized["version"] = schema_version
    if not normalized.get("generatedAt"):
        stamp = now or datetime.now(timezone.utc)
        normalized["generatedAt"] = stamp.isoformat()
    if normalized.get("stopLossUpdates") is None:
        normalized["stopLossUpdates"] = []
    return normalized


# ------------------------------------------------------------------
# Validate
# ------------------------------------------------------------------

def validate_decision_batch(
    raw: Any,
    *,
    schema_version: str = DEFAULT_SCHEMA_VERSION,
) -> DecisionBatch:
    """Validate a decoded decision batch and return it as a ``DecisionBatch``.

    Raises ``SchemaValidationError`` describing the first violation.
    """
    if not isinstance(raw, Mapping):
        raise SchemaValidationError(
            "Decision batch must be an object.",
            expected="object",
            actual=type(raw).__name__,
        )

    version = raw.get("version")
    if version != schema_version:
        raise SchemaValidationError(
            f"Unsupported schema version {version!r}.",
            path="version",
            field="version",
            expected=schema_version,
            actual=version,
        )

    if not raw.get("generatedAt"):
        raise SchemaValidationError(
            "Missing generatedAt.",
            path="generatedAt",
            field="generatedAt",
            expected="timestamp",
            actual=raw.get("generatedAt"),
        )

    decisions = raw.get("decisions")
    if not isinstance(decisions, list):
        raise SchemaValidationError(
            "decisions must be an array.",
            path="decisions",
            field="decisions",
            expected="array",
            actual=type(decisions).__name__,
        )

    for index, decision in enumerate(decisions):
        _validate_decision(decision, index)

    updates = raw.get("stopLossUpdates")
    if updates is None:
        updates = []
    if not isinstance(updates, list):
        raise SchemaValidationError(
            "stopLossUpdates must be an array.",
            path="stopLossUpdates",
            field="stopLossUpdates",
            expected="array",
            actual=type(updates).__name__,
        )
    for index, update in enumerate(updates):
        _validate_stop_loss_update(update, index)

    try:
        return DecisionBatch.model_validate(
            {
                "version": version,
                "generatedAt": str(raw["generatedAt"]),
                "decisions": [_coerce_decision(d) for d in decisions],
                "stopLossUpdates": updates,
                "riskAssessment": raw.get("riskAssessment"),
                "notes": raw.get("notes"),
            }
        )
    except ValidationError as exc:
        raise SchemaValidationError(f"Decision batch failed model validation: {exc}") from exc


# ------------------------------------------------------------------
# Per-entry checks
# ------------------------------------------------------------------

def _validate_decision(decision: Any, index: int) -> None:
    prefix = f"decisions[{index}]"

    if not isinstance(decision, Mapping):
        raise SchemaValidationError(
            "Decision must be an object.",
            path=prefix,
            index=index,
            expected="object",
            actual=type(decision).__name__,
        )

    for name in REQUIRED_DECISION_FIELDS:
        if decision.get(name) is None:
            _fail(prefix, index, name, "Missing required field.", "present", None)

    action = decision["action"]
    if action not in VALID_ACTIONS:
        _fail(prefix, index, "action", "Invalid action.", list(VALID_ACTIONS), action)

    _check_ticker(decision["ticker"], prefix, index)

    shares = decision["shares"]
    if not _is_integer(shares) or shares < 0:
        _fail(prefix, index, "shares", "shares must be a non-negative integer.", "integer >= 0", shares)

    order_type = decision.get("orderType")
    if order_type is not None:
        if order_type not in VALID_ORDER_TYPES:
            _fail(prefix, index, "orderType", "Invalid order type.", list(VALID_ORDER_TYPES), order_type)
        if order_type == OrderType.LIMIT.value:
            limit_price = decision.get("limitPrice")
            if not _is_positive_number(limit_price):
                _fail(prefix, index, "limitPrice", "Limit orders require a positive limitPrice.", "> 0", limit_price)

    if action == Action.BUY.value:
        stop_loss = decision.get("stopLoss")
        if not _is_positive_number(stop_loss):
            _fail(prefix, index, "stopLoss", "BUY decisions require a positive stopLoss.", "> 0", stop_loss)

    time_in_force = decision.get("timeInForce")
    if time_in_force is not None and time_in_force not in VALID_TIME_IN_FORCE:
        _fail(prefix, index, "timeInForce", "Invalid timeInForce.", list(VALID_TIME_IN_FORCE), time_in_force)

    confidence = decision.get("confidence")
    if confidence is not None and (not _is_number(confidence) or not 0 <= confidence <= 1):
        _fail(prefix, index, "confidence", "confidence must be within [0, 1].", "[0, 1]", confidence)


def _validate_stop_loss_update(update: Any, index: int) -> None:
    prefix = f"stopLossUpdates[{index}]"

    if not isinstance(update, Mapping):
        raise SchemaValidationError(
            "Stop-loss update must be an object.",
            path=prefix,
            index=index,
            expected="object",
            actual=type(update).__name__,
        )

    for name in REQUIRED_STOP_LOSS_FIELDS:
        if update.get(name) is None:
            _fail(prefix, index, name, "Missing required field.", "present", None)

    _check_ticker(update["ticker"], prefix, index)

    stop_loss = update["stopLoss"]
    if not _is_positive_number(stop_loss):
        _fail(prefix, index, "stopLoss", "stopLoss must be positive.", "> 0", stop_loss)


def _check_ticker(ticker: Any, prefix: str, index: int) -> None:
    if not isinstance(ticker, str) or not TICKER_PATTERN.fullmatch(ticker):
        _fail(prefix, index, "ticker", "Ticker must match ^[A-Z0-9-]+$.", TICKER_PATTERN.pattern, ticker)


def _coerce_decision(decision: Mapping[str, Any]) -> dict[str, Any]:
    """Integral floats (``5.0``) become ints before model validation."""
    coerced = dict(decision)
    coerced["shares"] = int(decision["shares"])
    reasoning = coerced.get("reasoning")
    if reasoning is None:
        coerced["reasoning"] = ""
    elif not isinstance(reasoning, str):
        coerced["reasoning"] = str(reasoning)
    return coerced


def _fail(prefix: str, index: int, field: str, message: str, expected: Any, actual: Any) -> None:
    raise SchemaValidationError(
        message,
        path=f"{prefix}.{field}",
        index=index,
        field=field,
        expected=expected,
        actual=actual,
    )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_integer(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and value.is_integer()


def _is_positive_number(value: Any) -> bool:
    return _is_number(value) and value > 0
