"""
Contract binding for the evidence NFT.

Resolution is configuration only: the address and chain are validated and a
web3 contract object is bound to the chain's RPC endpoint without any request
being sent.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from web3 import Web3
from web3.exceptions import Web3Exception

from .errors import GatewayError
from .models import ChainDescriptor, MintTarget

ADDRESS_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")
RPC_URL_PATTERN = re.compile(r"^https?://\S+$")
RPC_TIMEOUT_SECONDS = 20

DEFAULT_EVIDENCE_NFT_ABI: list[dict[str, Any]] = [
    {
        "inputs": [{"internalType": "string", "name": "tokenURI", "type": "string"}],
        "name": "mint",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "address", "name": "to", "type": "address"},
            {"internalType": "string", "name": "uri", "type": "string"},
        ],
        "name": "safeMint",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


@dataclass(frozen=True)
class ContractHandle:
    target: MintTarget
    web3: Any
    contract: Any


def _validate_chain(chain: ChainDescriptor) -> None:
    if not isinstance(chain.chain_id, int) or isinstance(chain.chain_id, bool) or chain.chain_id <= 0:
        raise GatewayError("chain_id must be a positive integer")
    if not isinstance(chain.rpc, str) or not RPC_URL_PATTERN.fullmatch(chain.rpc.strip()):
        raise GatewayError("chain rpc must be an http(s) URL")


def checksum_address(address: Any) -> str:
    candidate = address.strip() if isinstance(address, str) else ""
    if not ADDRESS_PATTERN.fullmatch(candidate):
        raise GatewayError("contract address must be a 0x-prefixed 20-byte hex address")
    body = candidate[2:]
    # Mixed case means the caller supplied an EIP-55 checksum, so it has to be right.
    if body != body.lower() and body != body.upper() and not Web3.is_checksum_address(candidate):
        raise GatewayError("contract address has an invalid checksum")
    return Web3.to_checksum_address(candidate)


def resolve(
    address: str,
    chain: ChainDescriptor,
    abi: list[dict[str, Any]] | None = None,
    web3: Any = None,
) -> ContractHandle:
    _validate_chain(chain)
    contract_address = checksum_address(address)
    contract_abi = DEFAULT_EVIDENCE_NFT_ABI if abi is None else abi
    if not isinstance(contract_abi, list) or not contract_abi:
        raise GatewayError("contract ABI must be a non-empty list")

    if web3 is None:
        web3 = Web3(Web3.HTTPProvider(chain.rpc.strip(), request_kwargs={"timeout": RPC_TIMEOUT_SECONDS}))
    try:
        contract = web3.eth.contract(address=contract_address, abi=contract_abi)
    except (TypeError, ValueError, Web3Exception) as exc:
        raise GatewayError(f"contract ABI is invalid: {exc}") from exc

    return ContractHandle(
        target=MintTarget(address=contract_address, chain=chain),
        web3=web3,
        contract=contract,
    )
