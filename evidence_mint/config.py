"""Environment-driven configuration for the submission pipeline."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from eth_account import Account

from .minting import DEFAULT_RECEIPT_TIMEOUT_SECONDS
from .models import ChainDescriptor, NativeCurrency
from .storage import DEFAULT_STORAGE_ENDPOINT, DEFAULT_STORAGE_REGION

DEFAULT_CHAIN_ID = 80002
DEFAULT_CHAIN_NAME = "Polygon Amoy Testnet"
DEFAULT_RPC_URL = "https://rpc-amoy.polygon.technology"
DEFAULT_EXPLORER_URL = "https://amoy.polygonscan.com"
DEFAULT_NATIVE_CURRENCY = NativeCurrency(name="POL", symbol="POL", decimals=18)

CHAIN_ID_ENV = "EVIDENCE_CHAIN_ID"
CHAIN_NAME_ENV = "EVIDENCE_CHAIN_NAME"
RPC_URL_ENV = "EVIDENCE_RPC_URL"
EXPLORER_URL_ENV = "EVIDENCE_EXPLORER_URL"
CONTRACT_ADDRESS_ENV = "EVIDENCE_CONTRACT_ADDRESS"
CONTRACT_ABI_PATH_ENV = "EVIDENCE_CONTRACT_ABI_PATH"
MINT_PREFLIGHT_ENV = "EVIDENCE_MINT_PREFLIGHT"
WAIT_FOR_RECEIPT_ENV = "EVIDENCE_WAIT_FOR_RECEIPT"
RECEIPT_TIMEOUT_ENV = "EVIDENCE_RECEIPT_TIMEOUT_SECONDS"
STORAGE_ENDPOINT_ENV = "EVIDENCE_STORAGE_ENDPOINT"
STORAGE_BUCKET_ENV = "EVIDENCE_STORAGE_BUCKET"
STORAGE_REGION_ENV = "EVIDENCE_STORAGE_REGION"
SIGNER_PRIVATE_KEY_ENV = "EVIDENCE_SIGNER_PRIVATE_KEY"

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    chain: ChainDescriptor
    contract_address: str
    contract_abi: list[dict[str, Any]] | None
    mint_preflight: bool
    wait_for_receipt: bool
    receipt_timeout: int
    storage_endpoint: str
    storage_bucket: str
    storage_region: str


def _require_env(name: str) -> str:
    value = os.environ.get(name, "").strip()
    if not value:
        raise RuntimeError(f"{name} environment variable is required")
    return value


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in TRUE_VALUES:
        return True
    if raw in FALSE_VALUES:
        return False
    raise RuntimeError(f"{name} must be true or false")


def _env_positive_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer") from exc
    if parsed <= 0:
        raise RuntimeError(f"{name} must be greater than 0")
    return parsed


def chain_from_env() -> ChainDescriptor:
    return ChainDescriptor(
        chain_id=_env_positive_int(CHAIN_ID_ENV, DEFAULT_CHAIN_ID),
        name=os.environ.get(CHAIN_NAME_ENV, "").strip() or DEFAULT_CHAIN_NAME,
        rpc=os.environ.get(RPC_URL_ENV, "").strip() or DEFAULT_RPC_URL,
        native_currency=DEFAULT_NATIVE_CURRENCY,
        explorer_url=os.environ.get(EXPLORER_URL_ENV, "").strip() or DEFAULT_EXPLORER_URL,
    )


def load_contract_abi(path: str | Path | None = None) -> list[dict[str, Any]] | None:
    """Read the contract ABI JSON, or return None to use the built-in mint ABI.

    Accepts either a bare ABI list or a compiler artifact with an ``abi`` key.
    """
    if path is None:
        path = os.environ.get(CONTRACT_ABI_PATH_ENV, "").strip() or None
    if path is None:
        return None

    try:
        document = json.loads(Path(path).read_text(encoding="utf-8"))
    except OSError as exc:
        raise RuntimeError(f"unable to read contract ABI from {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise RuntimeError(f"contract ABI at {path} must be valid JSON") from exc

    if isinstance(document, dict):
        document = document.get("abi")
    if not isinstance(document, list) or not document:
        raise RuntimeError(f"contract ABI at {path} must be a non-empty JSON list")
    return document


def _optional_env(name: str) -> str:
    return os.environ.get(name, "").strip()


def load_settings(require_contract: bool = True, require_storage: bool = True) -> Settings:
    """Read settings from the environment; only the required sections must be set."""
    return Settings(
        chain=chain_from_env(),
        contract_address=_require_env(CONTRACT_ADDRESS_ENV) if require_contract else _optional_env(CONTRACT_ADDRESS_ENV),
        contract_abi=load_contract_abi(),
        mint_preflight=_env_flag(MINT_PREFLIGHT_ENV, True),
        wait_for_receipt=_env_flag(WAIT_FOR_RECEIPT_ENV, True),
        receipt_timeout=_env_positive_int(RECEIPT_TIMEOUT_ENV, DEFAULT_RECEIPT_TIMEOUT_SECONDS),
        storage_endpoint=os.environ.get(STORAGE_ENDPOINT_ENV, "").strip() or DEFAULT_STORAGE_ENDPOINT,
        storage_bucket=_require_env(STORAGE_BUCKET_ENV) if require_storage else _optional_env(STORAGE_BUCKET_ENV),
        storage_region=os.environ.get(STORAGE_REGION_ENV, "").strip() or DEFAULT_STORAGE_REGION,
    )


def signer_from_env(name: str = SIGNER_PRIVATE_KEY_ENV) -> Any:
    private_key = _require_env(name)
    try:
        return Account.from_key(private_key)
    except Exception as exc:
        raise RuntimeError(f"{name} is not a valid private key") from exc
