from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

DEFAULT_MIME_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class EvidenceFile:
    name: str
    mime_type: str
    content: bytes = field(repr=False)

    @property
    def size_bytes(self) -> int:
        return len(self.content)

    @classmethod
    def from_path(cls, path: str | Path, mime_type: str | None = None) -> "EvidenceFile":
        """Read a local file into memory, guessing its MIME type from the name."""
        source = Path(path)
        resolved_type = mime_type or mimetypes.guess_type(source.name)[0] or DEFAULT_MIME_TYPE
        return cls(name=source.name, mime_type=resolved_type, content=source.read_bytes())


@dataclass(frozen=True)
class NativeCurrency:
    name: str
    symbol: str
    decimals: int = 18


@dataclass(frozen=True)
class ChainDescriptor:
    chain_id: int
    name: str
    rpc: str
    native_currency: NativeCurrency
    explorer_url: str | None = None

    def transaction_link(self, tx_hash: str) -> str | None:
        if not self.explorer_url:
            return None
        return f"{self.explorer_url.rstrip('/')}/tx/{tx_hash}"


@dataclass(frozen=True)
class MintTarget:
    address: str
    chain: ChainDescriptor


@dataclass(frozen=True)
class MintTransaction:
    method: str
    signature: str
    params: tuple[Any, ...]
    target: MintTarget
    data: str
    sender: str
    gas: int | None = None


@dataclass(frozen=True)
class TransactionReceipt:
    tx_hash: str
    block_number: int | None = None
    status: int | None = None
    explorer_link: str | None = None
