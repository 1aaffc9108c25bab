from __future__ import annotations

import logging
import os
import threading
from copy import deepcopy
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)

_cache_lock = threading.Lock()
_cached: dict[str, Any] | None = None
_cached_path: str | None = None


def _project_root() -> Path:
    # escrowtrader/utils/config_loader.py -> escrowtrader/utils -> escrowtrader -> project root
    return Path(__file__).resolve().parents[2]


def default_config_path() -> Path:
    env_path = os.getenv("ESCROWTRADER_CONFIG")
    if env_path:
        return Path(env_path)
    return _project_root() / "config" / "config.yaml"


def resolve_db_path(cfg: dict[str, Any]) -> str:
    """Database path from config; relative paths are anchored at the project root."""
    raw = str((cfg.get("database") or {}).get("path") or "escrowtrader.db")
    if raw == ":memory:" or Path(raw).is_absolute():
        return raw
    return str(_project_root() / raw)


def _apply_env_overrides(cfg: dict[str, Any]) -> None:
    """
    Override selected YAML settings with environment variables.

    Only operational settings are overridable; ledger state itself lives in the database.
    """
    database = cfg.setdefault("database", {})
    if os.getenv("ESCROWTRADER_DB_PATH"):
        database["path"] = os.environ["ESCROWTRADER_DB_PATH"]

    custodian = cfg.setdefault("custodian", {})
    if os.getenv("ESCROWTRADER_CUSTODIAN"):
        custodian["principal"] = os.environ["ESCROWTRADER_CUSTODIAN"]

    market = cfg.setdefault("market", {})
    if os.getenv("ESCROWTRADER_MIN_TRADE_QUANTITY"):
        market["min_trade_quantity"] = int(os.environ["ESCROWTRADER_MIN_TRADE_QUANTITY"])

    api = cfg.setdefault("api", {})
    if os.getenv("ESCROWTRADER_API_HOST"):
        api["host"] = os.environ["ESCROWTRADER_API_HOST"]
    if os.getenv("ESCROWTRADER_API_PORT"):
        api["port"] = int(os.environ["ESCROWTRADER_API_PORT"])


def validate_config(cfg: dict[str, Any]) -> None:
    """
    Fail fast if the configuration is missing required sections.
    """
    required_top = ["database", "custodian", "market", "transfer"]
    missing = [k for k in required_top if k not in cfg]
    if missing:
        raise ValueError(f"Missing required config sections: {', '.join(missing)}")

    custodian = cfg.get("custodian") or {}
    principal = custodian.get("principal")
    if not isinstance(principal, str) or not principal.strip():
        raise ValueError("custodian.principal must be a non-empty string")

    market = cfg.get("market") or {}
    min_qty = market.get("min_trade_quantity")
    if not isinstance(min_qty, int) or isinstance(min_qty, bool) or min_qty < 0:
        raise ValueError("market.min_trade_quantity must be an integer >= 0")

    transfer = cfg.get("transfer") or {}
    backend = transfer.get("backend", "paper")
    if backend != "paper":
        raise ValueError(f"Unsupported transfer backend: {backend}")


def load_config(config_path: str | Path | None = None, *, force_reload: bool = False) -> dict[str, Any]:
    """
    Load the YAML config once and reuse it across the process.

    - Reads `config/config.yaml` by default (or `ESCROWTRADER_CONFIG`).
    - Applies environment overrides for a small set of operational settings.
    - Returns a deep copy so callers can safely mutate local copies.
    """
    global _cached, _cached_path

    path = Path(config_path) if config_path else default_config_path()
    path_str = str(path.resolve())

    with _cache_lock:
        if not force_reload and _cached is not None and _cached_path == path_str:
            return deepcopy(_cached)

        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with path.open("r", encoding="utf-8") as f:
            cfg = yaml.safe_load(f) or {}

        if not isinstance(cfg, dict):
            raise ValueError(f"Config must be a YAML mapping (dict); got {type(cfg).__name__}")

        _apply_env_overrides(cfg)
        validate_config(cfg)

        _cached = cfg
        _cached_path = path_str
        logger.info("Loaded config from %s", path_str)
        return deepcopy(cfg)
