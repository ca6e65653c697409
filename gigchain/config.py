# gigchain/config.py
# Environment-driven settings. Values are read at call time so tests and
# long-running workers pick up changes without re-importing modules.

from __future__ import annotations

import os
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


# ------------------------------ Database ------------------------------

def database_url() -> Optional[str]:
    return os.getenv("DATABASE_URL")


# ------------------------------ Ledger (Substrate) ------------------------------

def ws_url() -> str:
    return os.getenv("SUBSTRATE_WS_URL", "ws://127.0.0.1:9944")


def type_registry_preset() -> str:
    return os.getenv("SUBSTRATE_TYPE_REGISTRY_PRESET", "substrate-node-template")


def ss58_format() -> int:
    return int(os.getenv("SUBSTRATE_SS58_FORMAT", "42"))


def signer_uri() -> Optional[str]:
    # Platform / arbiter key, e.g. //Alice
    return os.getenv("SUBSTRATE_SIGNER_URI") or None


def signer_mnemonic() -> Optional[str]:
    return os.getenv("SUBSTRATE_SIGNER_MNEMONIC") or None


def wait_for_finalization() -> bool:
    return _flag("LEDGER_WAIT_FINALIZATION")


def channel_pallet() -> str:
    # Module name as it appears in construct_runtime!
    return os.getenv("CHANNEL_PALLET", "Channels")


def escrow_pallet() -> str:
    return os.getenv("ESCROW_PALLET", "Escrow")


def code_stage_pallet() -> str:
    return os.getenv("CODE_STAGE_PALLET", "CodeStaging")


def escrow_gas_limit() -> int:
    return int(os.getenv("ESCROW_GAS_LIMIT", "10000000"))


def escrow_bytecode_path() -> str:
    return os.getenv("ESCROW_BYTECODE_PATH", "contracts/escrow.bin")


def stage_chunk_size() -> int:
    # A single submission has a hard size ceiling; bytecode is staged in steps.
    return int(os.getenv("STAGE_CHUNK_SIZE", "4096"))


def token_decimals() -> int:
    # Decimal places between a displayed amount and the chain's base unit.
    return int(os.getenv("TOKEN_DECIMALS", "0"))


def sponsor_initial_balance() -> int:
    return int(os.getenv("SPONSOR_INITIAL_BALANCE", "10000000000"))


# ------------------------------ Channels ------------------------------

def profile_channel_id() -> str:
    return os.getenv("PROFILE_CHANNEL_ID", "")


def gigs_channel_id() -> str:
    return os.getenv("GIGS_CHANNEL_ID", "")


def messages_channel_id() -> str:
    return os.getenv("MESSAGES_CHANNEL_ID", "")


# ------------------------------ Indexer ------------------------------

def indexer_url() -> str:
    return os.getenv("INDEXER_URL", "http://127.0.0.1:5551/api/v1").rstrip("/")


def indexer_timeout_sec() -> float:
    return float(os.getenv("INDEXER_TIMEOUT_SEC", "10"))


def indexer_page_limit() -> int:
    return int(os.getenv("INDEXER_PAGE_LIMIT", "100"))


def resolver_attempts() -> int:
    return int(os.getenv("RESOLVER_ATTEMPTS", "5"))


def resolver_interval_sec() -> float:
    return float(os.getenv("RESOLVER_INTERVAL_SEC", "2"))


# ------------------------------ Marketplace ------------------------------

def xp_per_release() -> int:
    return int(os.getenv("XP_PER_RELEASE", "100"))


def budget_currency() -> str:
    return os.getenv("BUDGET_CURRENCY", "UNIT")


def reward_token_id(reward_id: str) -> Optional[str]:
    return os.getenv(f"REWARD_TOKEN_{reward_id}") or None


# ------------------------------ Replay scheduling ------------------------------

def sync_on_startup() -> bool:
    return _flag("SYNC_ON_STARTUP")


def sync_interval_sec() -> int:
    # 0 disables the periodic replay job.
    return int(os.getenv("SYNC_INTERVAL_SEC", "0"))


# ------------------------------ Email ------------------------------

def smtp_host() -> str:
    return os.getenv("SMTP_HOST", "")


def smtp_port() -> int:
    return int(os.getenv("SMTP_PORT", "465"))


def smtp_user() -> str:
    return os.getenv("SMTP_USER", "")


def smtp_password() -> str:
    return os.getenv("SMTP_PASS", "")


def smtp_from() -> str:
    return os.getenv("SMTP_FROM", "no-reply@gigchain.local")


def frontend_url() -> str:
    return os.getenv("FRONTEND_URL", "http://localhost:5173").rstrip("/")


# ------------------------------ HTTP / logging ------------------------------

def allow_origins() -> List[str]:
    # MVP: allow all; tighten in production by setting ALLOW_ORIGINS (comma-separated).
    raw = os.getenv("ALLOW_ORIGINS")
    return [o.strip() for o in raw.split(",") if o.strip()] if raw else ["*"]


def log_dir() -> str:
    return os.getenv("LOG_DIR", os.path.join(os.path.dirname(__file__), "logs"))
