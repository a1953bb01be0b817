"""Ledger configuration model, loaded from YAML or the environment.

These live in ``models/`` because they are shared data contracts used by the
ledger service, the trading cycle, and the CLI entrypoint.
"""

from __future__ import annotations

import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

DEFAULT_SCHEMA_VERSION = "2.0"


class LedgerConfig(BaseModel):
    """Top-level configuration for the portfolio ledger."""

    starting_cash: float = Field(
        default=100.0,
        gt=0,
        description="Cash balance of the snapshot created when none exists yet.",
    )
    schema_version: str = Field(
        default=DEFAULT_SCHEMA_VERSION,
        description="Decision batch version accepted by the validator.",
    )
    execute_trades: bool = Field(
        default=False,
        description=(
            "When false, decisions are filled by the paper broker. When true, "
            "a live brokerage executor must be supplied."
        ),
    )
    data_dir: str = Field(
        default="data",
        description="Directory used by the JSON-file ledger gateway.",
    )
    history_days: int = Field(
        default=30,
        ge=1,
        description="Default look-back window for trading history queries.",
    )

    @classmethod
    def from_yaml(cls, path: str | Path) -> LedgerConfig:
        """Load and validate a ``LedgerConfig`` from a YAML file.

        Raises ``FileNotFoundError`` if the file does not exist and
        ``ValueError`` if the content is not a valid YAML mapping.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open(encoding="utf-8") as fh:
            raw = yaml.safe_load(fh)

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ValueError(
                f"Expected a YAML mapping in {path}, got {type(raw).__name__}."
            )

        return cls(**raw)

    @classmethod
    def from_env(cls) -> LedgerConfig:
        """Build a config from environment variables (``.env`` is loaded if present).

        Recognised variables: ``STARTING_CASH``, ``EXECUTE_TRADES``,
        ``LEDGER_DATA_DIR``, ``SCHEMA_VERSION``. Unset ones keep their defaults.
        """
        load_dotenv()
        raw: dict[str, object] = {}
        if os.environ.get("STARTING_CASH"):
            raw["starting_cash"] = float(os.environ["STARTING_CASH"])
        if os.environ.get("EXECUTE_TRADES"):
            raw["execute_trades"] = os.environ["EXECUTE_TRADES"].strip().lower() == "true"
        if os.environ.get("LEDGER_DATA_DIR"):
            raw["data_dir"] = os.environ["LEDGER_DATA_DIR"]
        if os.environ.get("SCHEMA_VERSION"):
            raw["schema_version"] = os.environ["SCHEMA_VERSION"]
        return cls(**raw)
