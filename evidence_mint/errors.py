"""Error taxonomy for the evidence submission pipeline."""

from __future__ import annotations


class EvidenceMintError(Exception):
    """Base class for every failure scoped to one submission attempt."""

    retryable = True


class ValidationError(EvidenceMintError):
    """Raised when a user action is not allowed in the current state."""


class StorageError(EvidenceMintError):
    """Raised when evidence content cannot be stored."""


class GatewayError(EvidenceMintError):
    """Raised when a contract address or chain descriptor is malformed."""


class BuildError(EvidenceMintError):
    """Raised when no configured mint method could be built."""

    def __init__(self, message: str, cause: BaseException | None = None):
        super().__init__(message)
        self.cause = cause


class SubmissionError(EvidenceMintError):
    """Raised when signing or broadcasting a transaction fails."""


class ContractRevertedError(SubmissionError):
    """Raised when the chain rejected the transaction with a revert."""

    retryable = False
