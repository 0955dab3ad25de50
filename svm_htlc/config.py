"""
Service configuration, read from the environment.
"""

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .core import TOKEN_DECIMALS
from .ledger.keys import DEFAULT_HTLC_PROGRAM_ID, Pubkey

CLOCK_SYSTEM = "system"
CLOCK_MANUAL = "manual"

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("", "0", "false", "no", "off")


@dataclass
class SVMConfig:
    """svm-htlc service configuration."""
    program_id: Pubkey = DEFAULT_HTLC_PROGRAM_ID
    db_path: Optional[str] = None       # None = in-memory only
    faucet_enabled: bool = False        # devnet airdrop / mint / clock endpoints
    clock: str = CLOCK_SYSTEM           # system, manual
    token_decimals: int = TOKEN_DECIMALS
    keeper_poll_interval: float = 0.0   # seconds, 0 = keeper disabled
    host: str = "0.0.0.0"
    port: int = 8080
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "SVMConfig":
        """
        Build from environment variables.

        Raises:
            ValueError: on any malformed value
        """
        env = os.environ if env is None else env

        program_id = DEFAULT_HTLC_PROGRAM_ID
        if env.get("SVM_HTLC_PROGRAM_ID"):
            program_id = Pubkey(env["SVM_HTLC_PROGRAM_ID"])

        db_path = env.get("SVM_HTLC_DB_PATH") or None
        if db_path:
            db_path = os.path.expanduser(db_path)

        clock = env.get("SVM_HTLC_CLOCK", CLOCK_SYSTEM).lower()
        if clock not in (CLOCK_SYSTEM, CLOCK_MANUAL):
            raise ValueError(f"SVM_HTLC_CLOCK must be '{CLOCK_SYSTEM}' or '{CLOCK_MANUAL}', got {clock!r}")

        token_decimals = _int(env, "SVM_HTLC_TOKEN_DECIMALS", TOKEN_DECIMALS)
        if not 0 <= token_decimals <= 18:
            raise ValueError(f"SVM_HTLC_TOKEN_DECIMALS out of range: {token_decimals}")

        poll = env.get("KEEPER_POLL_INTERVAL", "0")
        try:
            keeper_poll_interval = float(poll)
        except ValueError:
            raise ValueError(f"KEEPER_POLL_INTERVAL must be a number, got {poll!r}")
        if keeper_poll_interval < 0:
            raise ValueError("KEEPER_POLL_INTERVAL must not be negative")

        port = _int(env, "PORT", 8080)
        if not 0 < port < 65536:
            raise ValueError(f"PORT out of range: {port}")

        log_level = env.get("LOG_LEVEL", "INFO").upper()
        if not isinstance(logging.getLevelName(log_level), int):
            raise ValueError(f"Unknown LOG_LEVEL: {log_level}")

        return cls(
            program_id=program_id,
            db_path=db_path,
            faucet_enabled=_bool(env, "SVM_HTLC_FAUCET"),
            clock=clock,
            token_decimals=token_decimals,
            keeper_poll_interval=keeper_poll_interval,
            host=env.get("HOST", "0.0.0.0"),
            port=port,
            log_level=log_level,
        )


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _bool(env: Mapping[str, str], name: str) -> bool:
    raw = env.get(name, "").strip().lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {raw!r}")
