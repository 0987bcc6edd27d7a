"""
Evidence submission workflow.

Flow:
1. select_file stores the evidence in memory and clears earlier results.
2. start_upload stores the evidence and normalizes the provider payload to a URI.
3. start_mint builds a mint call for the URI and broadcasts it with the connected account.

Only the upload and the mint suspend. Every select_file and disconnect bumps
the generation counter; a result that comes back under an older generation is
dropped without touching the state.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable

from .errors import EvidenceMintError, StorageError, SubmissionError, ValidationError
from .gateway import ContractHandle
from .minting import MintTransactionBuilder, TransactionSubmitter
from .models import EvidenceFile, TransactionReceipt
from .uri import normalize

logger = logging.getLogger(__name__)


class SubmissionPhase(str, enum.Enum):
    IDLE = "idle"
    FILE_SELECTED = "file_selected"
    UPLOADING = "uploading"
    UPLOADED = "uploaded"
    UPLOAD_FAILED = "upload_failed"
    MINTING = "minting"
    MINTED = "minted"
    MINT_FAILED = "mint_failed"


UPLOADABLE_PHASES = {SubmissionPhase.FILE_SELECTED, SubmissionPhase.UPLOAD_FAILED}
MINTABLE_PHASES = {SubmissionPhase.UPLOADED, SubmissionPhase.MINT_FAILED}


@dataclass(frozen=True)
class SubmissionState:
    phase: SubmissionPhase = SubmissionPhase.IDLE
    file: EvidenceFile | None = None
    resource_uri: str | None = None
    receipt: TransactionReceipt | None = None
    error: EvidenceMintError | None = None
    validation_error: ValidationError | None = None
    generation: int = 0

    @property
    def error_message(self) -> str | None:
        if self.error is None:
            return None
        return str(self.error)

    @property
    def can_mint(self) -> bool:
        return self.phase in MINTABLE_PHASES and self.resource_uri is not None


StateListener = Callable[[SubmissionState], None]
AccountListener = Callable[[Any], None]


class AccountChannel:
    """Connection state published by the external wallet provider."""

    def __init__(self, address: str | None = None, signer: Any = None):
        self._address = address or None
        self._signer = signer
        self._listeners: list[AccountListener] = []

    @property
    def address(self) -> str | None:
        return self._address

    @property
    def signer(self) -> Any:
        return self._signer

    @property
    def connected(self) -> bool:
        return bool(self._address)

    def subscribe(self, listener: AccountListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def connect(self, address: str, signer: Any = None) -> None:
        if not address:
            raise ValueError("address is required to connect")
        self._set(address, signer)

    def disconnect(self) -> None:
        self._set(None, None)

    def _set(self, address: str | None, signer: Any) -> None:
        changed = (address or None) != self._address
        self._address = address or None
        self._signer = signer
        if not changed:
            return
        for listener in list(self._listeners):
            listener(self._address)


class EvidenceSubmission:
    def __init__(
        self,
        storage: Any,
        handle: ContractHandle,
        accounts: AccountChannel,
        builder: MintTransactionBuilder | None = None,
        submitter: TransactionSubmitter | None = None,
    ):
        self._storage = storage
        self._handle = handle
        self._accounts = accounts
        self._builder = builder or MintTransactionBuilder()
        self._submitter = submitter or TransactionSubmitter(handle.web3)
        self._state = SubmissionState()
        self._listeners: list[StateListener] = []
        self._account = accounts.address
        self._unsubscribe_accounts = accounts.subscribe(self._on_account_changed)

    @property
    def state(self) -> SubmissionState:
        return self._state

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def close(self) -> None:
        self._unsubscribe_accounts()
        self._listeners.clear()

    def _publish(self, state: SubmissionState) -> SubmissionState:
        if state.phase != self._state.phase:
            logger.debug("Submission %s -> %s (generation %d)", self._state.phase.value, state.phase.value, state.generation)
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception:
                logger.exception("Submission state listener failed")
        return state

    def _transition(self, **changes: Any) -> SubmissionState:
        changes.setdefault("validation_error", None)
        return self._publish(dataclasses.replace(self._state, **changes))

    def _reject(self, message: str) -> SubmissionState:
        logger.info("Rejected action: %s", message)
        return self._publish(dataclasses.replace(self._state, validation_error=ValidationError(message)))

    def _is_stale(self, generation: int) -> bool:
        return generation != self._state.generation

    def select_file(self, evidence: EvidenceFile) -> SubmissionState:
        if evidence is None:
            return self._reject("Choose an evidence file.")
        return self._publish(
            SubmissionState(
                phase=SubmissionPhase.FILE_SELECTED,
                file=evidence,
                generation=self._state.generation + 1,
            )
        )

    def account_disconnected(self) -> SubmissionState:
        logger.info("Account disconnected; discarding submission generation %d", self._state.generation)
        self._account = None
        return self._publish(SubmissionState(generation=self._state.generation + 1))

    def _on_account_changed(self, address: str | None) -> None:
        previous = self._account
        if not address:
            self.account_disconnected()
            return
        self._account = address
        if previous and previous.lower() != address.lower():
            # A different wallet must not mint evidence selected under the previous one.
            self.account_disconnected()
            self._account = address

    async def start_upload(self) -> SubmissionState:
        state = self._state
        if state.file is None:
            return self._reject("Select an evidence file before uploading.")
        if state.phase not in UPLOADABLE_PHASES:
            return self._reject(f"Cannot upload while the submission is {state.phase.value}.")

        generation = state.generation
        evidence = state.file
        self._transition(phase=SubmissionPhase.UPLOADING, error=None)

        try:
            raw_result = await asyncio.to_thread(self._storage.upload, evidence)
        except Exception as exc:
            error = exc if isinstance(exc, StorageError) else StorageError(str(exc) or exc.__class__.__name__)
            if self._is_stale(generation):
                logger.info("Discarding upload failure from superseded submission: %s", error)
                return self._state
            logger.warning("Upload of %s failed: %s", evidence.name, error)
            return self._transition(phase=SubmissionPhase.UPLOAD_FAILED, error=error)

        if self._is_stale(generation):
            logger.info("Discarding upload result from superseded submission")
            return self._state

        resource_uri = normalize(raw_result)
        logger.info("Uploaded %s as %s", evidence.name, resource_uri)
        return self._transition(phase=SubmissionPhase.UPLOADED, resource_uri=resource_uri)

    def _mint(self, resource_uri: str, account_address: str, signer: Any) -> TransactionReceipt:
        transaction = self._builder.build(self._handle, resource_uri, account_address)
        return self._submitter.submit(transaction, signer)

    async def start_mint(self) -> SubmissionState:
        state = self._state
        account_address = self._accounts.address
        if not account_address:
            return self._reject("Connect a wallet before minting.")
        if state.phase is SubmissionPhase.MINTED:
            return self._reject("This evidence has already been minted.")
        if state.resource_uri is None:
            return self._reject("Upload the evidence before minting.")
        if state.phase not in MINTABLE_PHASES:
            return self._reject(f"Cannot mint while the submission is {state.phase.value}.")

        generation = state.generation
        self._transition(phase=SubmissionPhase.MINTING, error=None)

        try:
            receipt = await asyncio.to_thread(self._mint, state.resource_uri, account_address, self._accounts.signer)
        except Exception as exc:
            error = exc if isinstance(exc, EvidenceMintError) else SubmissionError(str(exc) or exc.__class__.__name__)
            if self._is_stale(generation):
                logger.info("Discarding mint failure from superseded submission: %s", error)
                return self._state
            logger.warning("Mint of %s failed: %s", state.resource_uri, error)
            return self._transition(phase=SubmissionPhase.MINT_FAILED, error=error)

        if self._is_stale(generation):
            logger.info("Discarding mint receipt %s from superseded submission", receipt.tx_hash)
            return self._state

        return self._transition(phase=SubmissionPhase.MINTED, receipt=receipt)
