"""
Mint transaction construction and broadcast.

Deployed evidence contracts expose either a self-mint ``mint(string)`` or an
admin-style ``safeMint(address,string)``. The builder tries the configured
methods in order and stops at the first one that builds; each method is tried
at most once. When every method fails and the last failure is a gas-estimate
revert, the revert is raised as ContractRevertedError instead of BuildError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from web3 import Web3

from .errors import BuildError, ContractRevertedError, SubmissionError
from .gateway import ContractHandle
from .models import MintTransaction, TransactionReceipt

REVERT_MARKER = "execution reverted"
GAS_HEADROOM_PERCENT = 20
DEFAULT_RECEIPT_TIMEOUT_SECONDS = 180

logger = logging.getLogger(__name__)


def _self_mint_params(resource_uri: str, account_address: str) -> list[Any]:
    del account_address
    return [resource_uri]


def _safe_mint_params(resource_uri: str, account_address: str) -> list[Any]:
    return [account_address, resource_uri]


@dataclass(frozen=True)
class MintMethod:
    name: str
    signature: str
    build_params: Callable[[str, str], list[Any]]


MINT_METHODS: tuple[MintMethod, ...] = (
    MintMethod("mint", "mint(string tokenURI)", _self_mint_params),
    MintMethod("safeMint", "safeMint(address to, string uri)", _safe_mint_params),
)


class MintTransactionBuilder:
    def __init__(self, methods: tuple[MintMethod, ...] = MINT_METHODS, preflight: bool = True):
        if not methods:
            raise ValueError("at least one mint method is required")
        self.methods = tuple(methods)
        self.preflight = preflight

    def _build_one(
        self,
        method: MintMethod,
        handle: ContractHandle,
        resource_uri: str,
        account_address: str,
    ) -> MintTransaction:
        params = method.build_params(resource_uri, account_address)
        data = handle.contract.encode_abi(method.name, args=params)
        gas = None
        if self.preflight:
            gas = handle.web3.eth.estimate_gas(
                {"from": account_address, "to": handle.target.address, "data": data}
            )
        return MintTransaction(
            method=method.name,
            signature=method.signature,
            params=tuple(params),
            target=handle.target,
            data=data,
            sender=account_address,
            gas=gas,
        )

    def build(self, handle: ContractHandle, resource_uri: str, account_address: str) -> MintTransaction:
        if not resource_uri:
            raise BuildError("resource URI is required to build a mint transaction")

        try:
            sender = Web3.to_checksum_address(account_address)
        except (TypeError, ValueError) as exc:
            raise BuildError(f"account address is invalid: {account_address!r}", cause=exc) from exc

        last_error: Exception | None = None
        for method in self.methods:
            try:
                transaction = self._build_one(method, handle, resource_uri, sender)
            except Exception as exc:
                logger.warning("Mint method %s could not be built: %s", method.signature, exc)
                last_error = exc
                continue
            logger.info("Built %s call for %s", method.signature, handle.target.address)
            return transaction

        # A preflight that reverted on every method is an on-chain rejection, not a missing method.
        failure = _classify_failure(last_error)
        if isinstance(failure, ContractRevertedError):
            raise failure from last_error
        raise BuildError(
            f"no mint method could be built for {handle.target.address}: {_error_message(last_error)}",
            cause=last_error,
        ) from last_error


def _error_message(exc: BaseException) -> str:
    # web3 logic errors carry (message, data) args; the message is what users see.
    message = getattr(exc, "message", None)
    if isinstance(message, str) and message:
        return message
    return str(exc) or exc.__class__.__name__


def _classify_failure(exc: Exception) -> SubmissionError:
    message = _error_message(exc)
    if REVERT_MARKER in message.lower():
        return ContractRevertedError(message)
    return SubmissionError(message)


class TransactionSubmitter:
    def __init__(
        self,
        web3: Any,
        wait_for_receipt: bool = True,
        receipt_timeout: int = DEFAULT_RECEIPT_TIMEOUT_SECONDS,
    ):
        self.web3 = web3
        self.wait_for_receipt = wait_for_receipt
        self.receipt_timeout = receipt_timeout

    def _transaction_fields(self, transaction: MintTransaction, signer_address: str) -> dict[str, Any]:
        fields: dict[str, Any] = {
            "from": signer_address,
            "to": transaction.target.address,
            "data": transaction.data,
            "value": 0,
            "chainId": transaction.target.chain.chain_id,
        }
        gas = transaction.gas
        if gas is None:
            gas = self.web3.eth.estimate_gas(
                {"from": signer_address, "to": transaction.target.address, "data": transaction.data}
            )
        fields["gas"] = int(gas) * (100 + GAS_HEADROOM_PERCENT) // 100
        fields["gasPrice"] = self.web3.eth.gas_price
        fields["nonce"] = self.web3.eth.get_transaction_count(signer_address)
        return fields

    def submit(self, transaction: MintTransaction, signing_account: Any) -> TransactionReceipt:
        """Sign with the connected account and broadcast.

        Any failure whose message reports ``execution reverted`` raises
        ContractRevertedError with the original message; every other failure
        raises SubmissionError.
        """
        signer_address = getattr(signing_account, "address", None)
        if not signer_address:
            raise SubmissionError("a signing account is required")
        if signer_address.lower() != transaction.sender.lower():
            raise SubmissionError("signing account does not match the account the mint was built for")

        try:
            fields = self._transaction_fields(transaction, signer_address)
            signed = signing_account.sign_transaction(fields)
            raw_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as exc:
            raise _classify_failure(exc) from exc

        tx_hash = Web3.to_hex(raw_hash)
        logger.info("Broadcast %s to %s: %s", transaction.signature, transaction.target.address, tx_hash)
        link = transaction.target.chain.transaction_link(tx_hash)
        if not self.wait_for_receipt:
            return TransactionReceipt(tx_hash=tx_hash, explorer_link=link)

        try:
            receipt = self.web3.eth.wait_for_transaction_receipt(raw_hash, timeout=self.receipt_timeout)
        except Exception as exc:
            raise _classify_failure(exc) from exc

        status = receipt.get("status")
        if status != 1:
            raise ContractRevertedError(f"{REVERT_MARKER}: transaction {tx_hash} failed with status {status}")
        return TransactionReceipt(
            tx_hash=tx_hash,
            block_number=receipt.get("blockNumber"),
            status=status,
            explorer_link=link,
        )
