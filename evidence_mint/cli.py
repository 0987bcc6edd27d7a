"""
Command-line runner for evidence submission.

  evidence-mint submit --file <path>   upload the evidence, then mint it
  evidence-mint upload --file <path>   upload only and print the resource URI
  evidence-mint mint --uri <uri>       mint an already uploaded resource URI

Configuration comes from EVIDENCE_* environment variables (see config.py).
The signing key is read from EVIDENCE_SIGNER_PRIVATE_KEY unless --key-env names
another variable.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Any

from .config import SIGNER_PRIVATE_KEY_ENV, Settings, load_settings, signer_from_env
from .errors import ContractRevertedError, EvidenceMintError, StorageError
from .gateway import resolve
from .minting import MintTransactionBuilder, TransactionSubmitter
from .models import EvidenceFile
from .storage import StorageClient
from .submission import AccountChannel, EvidenceSubmission, SubmissionPhase, SubmissionState
from .uri import normalize

EXIT_SUCCESS = 0
EXIT_VALIDATION = 1
EXIT_STORAGE = 2
EXIT_MINT = 3
EXIT_REVERTED = 4

logger = logging.getLogger(__name__)


def _storage_client(settings: Settings) -> StorageClient:
    return StorageClient(
        bucket=settings.storage_bucket,
        endpoint_url=settings.storage_endpoint,
        region=settings.storage_region,
    )


def _mint_components(settings: Settings) -> tuple[Any, MintTransactionBuilder, TransactionSubmitter]:
    handle = resolve(settings.contract_address, settings.chain, abi=settings.contract_abi)
    builder = MintTransactionBuilder(preflight=settings.mint_preflight)
    submitter = TransactionSubmitter(
        handle.web3,
        wait_for_receipt=settings.wait_for_receipt,
        receipt_timeout=settings.receipt_timeout,
    )
    return handle, builder, submitter


async def run_submission(submission: EvidenceSubmission, evidence: EvidenceFile) -> SubmissionState:
    """Drive one submission from file selection to a terminal state."""
    submission.select_file(evidence)
    state = await submission.start_upload()
    if state.phase is not SubmissionPhase.UPLOADED:
        return state
    return await submission.start_mint()


def _exit_code_for_error(error: BaseException | None) -> int:
    if isinstance(error, ContractRevertedError):
        return EXIT_REVERTED
    if isinstance(error, StorageError):
        return EXIT_STORAGE
    return EXIT_MINT


def _print_receipt(resource_uri: str, receipt: Any) -> None:
    print(f"Evidence stored at {resource_uri}.")
    print(f"Mint transaction: {receipt.tx_hash}")
    if receipt.explorer_link:
        print(f"Explorer: {receipt.explorer_link}")


def _command_submit(args: argparse.Namespace) -> int:
    settings = load_settings()
    signer = signer_from_env(args.key_env)
    evidence = EvidenceFile.from_path(args.file)
    handle, builder, submitter = _mint_components(settings)

    accounts = AccountChannel()
    accounts.connect(signer.address, signer=signer)
    submission = EvidenceSubmission(
        storage=_storage_client(settings),
        handle=handle,
        accounts=accounts,
        builder=builder,
        submitter=submitter,
    )
    try:
        state = asyncio.run(run_submission(submission, evidence))
    finally:
        submission.close()

    if state.phase is SubmissionPhase.MINTED and state.receipt is not None:
        _print_receipt(state.resource_uri or "", state.receipt)
        return EXIT_SUCCESS
    if state.validation_error is not None:
        print(f"Error: {state.validation_error}", file=sys.stderr)
        return EXIT_VALIDATION
    print(f"Error: {state.error_message or 'submission did not complete'}", file=sys.stderr)
    return _exit_code_for_error(state.error)


def _command_upload(args: argparse.Namespace) -> int:
    settings = load_settings(require_contract=False)
    evidence = EvidenceFile.from_path(args.file)
    resource_uri = normalize(_storage_client(settings).upload(evidence))
    print(resource_uri)
    return EXIT_SUCCESS


def _command_mint(args: argparse.Namespace) -> int:
    settings = load_settings(require_storage=False)
    signer = signer_from_env(args.key_env)
    handle, builder, submitter = _mint_components(settings)
    transaction = builder.build(handle, args.uri, signer.address)
    receipt = submitter.submit(transaction, signer)
    _print_receipt(args.uri, receipt)
    return EXIT_SUCCESS


COMMANDS = {
    "submit": _command_submit,
    "upload": _command_upload,
    "mint": _command_mint,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="evidence-mint",
        description="Store evidence on IPFS and anchor it on-chain by minting an NFT",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for cmd in ("submit", "upload"):
        sub = subparsers.add_parser(cmd, help=f"{cmd} an evidence file")
        sub.add_argument("--file", required=True, help="Image, video, or PDF to submit")
        if cmd == "submit":
            sub.add_argument("--key-env", default=SIGNER_PRIVATE_KEY_ENV, help="Variable holding the signing key")

    mint = subparsers.add_parser("mint", help="mint an uploaded resource URI")
    mint.add_argument("--uri", required=True, help="Resource URI returned by upload")
    mint.add_argument("--key-env", default=SIGNER_PRIVATE_KEY_ENV, help="Variable holding the signing key")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    file_path = getattr(args, "file", None)
    if file_path is not None and not os.path.isfile(file_path):
        print(f"Error: File not found: {file_path}", file=sys.stderr)
        return EXIT_VALIDATION
    if getattr(args, "uri", None) is not None and not args.uri.strip():
        print("Error: --uri must be non-empty.", file=sys.stderr)
        return EXIT_VALIDATION

    try:
        return COMMANDS[args.command](args)
    except RuntimeError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return EXIT_VALIDATION
    except EvidenceMintError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return _exit_code_for_error(exc)


if __name__ == "__main__":
    sys.exit(main())
