"""Central exception hierarchy for the time release transfer helper."""
from __future__ import annotations

from typing import Iterable, List, Optional


class TransferHelperError(Exception):
    """Base exception for all custom errors raised by the helper."""


class ConfigurationError(TransferHelperError):
    """Raised when configuration loading or validation fails."""


class DependencyError(TransferHelperError):
    """Raised when dependency wiring or injection fails."""


class RpcError(TransferHelperError):
    """Raised when the chain RPC endpoint fails or returns a JSON-RPC error."""

    def __init__(self, message: str, code: Optional[int] = None, data: Optional[str] = None) -> None:
        super().__init__(message)
        self.code = code
        self.data = data


# --- Local validation (surfaced before any network action) ---


class ValidationError(TransferHelperError):
    """Raised for user input that is rejected locally."""


class InvalidAddress(ValidationError):
    """An address failed SS58 validation."""

    def __init__(self, which: str, reason: str) -> None:
        super().__init__(f'Address "{which}" is invalid: {reason}')
        self.which = which
        self.reason = reason


class InvalidThreshold(ValidationError):
    """Multisig threshold below one."""


class ThresholdExceedsSignatories(ValidationError):
    """Multisig threshold greater than the number of signatories."""

    def __init__(self, threshold: int, count: int) -> None:
        super().__init__(
            f"Multisig threshold {threshold} exceeds the number of signatories ({count})."
        )
        self.threshold = threshold
        self.count = count


class MultisigSetupError(ValidationError):
    """Aggregates every problem found while resolving a multisig setup."""

    def __init__(self, errors: Iterable[ValidationError], detail: Optional[str] = None) -> None:
        self.errors: List[ValidationError] = list(errors)
        parts = [str(err) for err in self.errors]
        if detail:
            parts.append(detail)
        super().__init__("Multisig setup is invalid: " + "; ".join(parts or ["unknown"]))


class StaleOrPastUnlockDate(ValidationError):
    """The unlock date does not map to a block in the future."""


class UnsupportedChain(TransferHelperError):
    """No block reference is configured for the connected chain."""

    def __init__(self, prefix: int) -> None:
        super().__init__(f"Unable to find relay chain date data for prefix {prefix}")
        self.prefix = prefix


# --- Submission (surfaced through the status stream) ---


class SubmissionError(TransferHelperError):
    """Raised while signing or broadcasting a call."""


class SigningRejected(SubmissionError):
    """The signer refused or was unable to sign."""


class BroadcastFailed(SubmissionError):
    """The node refused the extrinsic or the transport dropped it."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class RuntimeCallError(SubmissionError):
    """The node's transaction pool refused the extrinsic at submit time (invalid or unknown transaction)."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason
