"""Submit evidence to IPFS and anchor it on-chain by minting an NFT."""

from .errors import (
    BuildError,
    ContractRevertedError,
    EvidenceMintError,
    GatewayError,
    StorageError,
    SubmissionError,
    ValidationError,
)
from .gateway import ContractHandle, resolve
from .minting import MINT_METHODS, MintMethod, MintTransactionBuilder, TransactionSubmitter
from .models import (
    ChainDescriptor,
    EvidenceFile,
    MintTarget,
    MintTransaction,
    NativeCurrency,
    TransactionReceipt,
)
from .storage import StorageClient
from .submission import AccountChannel, EvidenceSubmission, SubmissionPhase, SubmissionState
from .uri import normalize

__all__ = [
    "AccountChannel",
    "BuildError",
    "ChainDescriptor",
    "ContractHandle",
    "ContractRevertedError",
    "EvidenceFile",
    "EvidenceMintError",
    "EvidenceSubmission",
    "GatewayError",
    "MINT_METHODS",
    "MintMethod",
    "MintTarget",
    "MintTransaction",
    "MintTransactionBuilder",
    "NativeCurrency",
    "StorageClient",
    "StorageError",
    "SubmissionError",
    "SubmissionPhase",
    "SubmissionState",
    "TransactionReceipt",
    "TransactionSubmitter",
    "ValidationError",
    "normalize",
    "resolve",
]
