"""
Multisig address resolver.

Every signatory is validated and every failure is collected before
anything is rejected. Derivation is still attempted when entries only fail
the network-prefix or checksum check but decode to an account id; the
resulting config carries those issues and `require_valid()` refuses it
before any call is built.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from chain.address import (
    decode_address,
    derive_multisig_account,
    encode_address,
    same_account,
    sort_account_ids,
    validate_address,
)
from errors import (
    InvalidAddress,
    InvalidThreshold,
    MultisigSetupError,
    ThresholdExceedsSignatories,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MultisigConfig:
    threshold: int
    # Canonical order: ascending by account id bytes.
    signatories: Tuple[str, ...]
    derived_address: Optional[str]
    prefix: int
    issues: Tuple[InvalidAddress, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.issues and self.derived_address is not None

    def require_valid(self) -> "MultisigConfig":
        if self.issues:
            raise MultisigSetupError(self.issues)
        if self.derived_address is None:
            raise MultisigSetupError([], "no multisig account could be derived")
        return self


def derive_multisig_address(account_ids: Iterable[bytes], threshold: int, prefix: int) -> str:
    return encode_address(derive_multisig_account(account_ids, threshold), prefix)


def _clean(signatories: Iterable[str]) -> List[str]:
    return [entry.strip() for entry in signatories if entry and entry.strip()]


def resolve(
    threshold: int,
    signatories: Iterable[str],
    sender: Optional[str] = None,
    *,
    prefix: int,
    sender_is_member: bool = True,
) -> MultisigConfig:
    """
    Resolve a threshold and a set of signatories into a MultisigConfig.

    The sender is added to the set unless `sender_is_member` is False.
    Duplicates (the same account under any prefix) count once.
    """
    entries = _clean(signatories)
    if sender and sender_is_member:
        entries.append(sender.strip())

    issues: List[InvalidAddress] = []
    undecodable: List[str] = []
    by_account: Dict[bytes, str] = {}
    for entry in entries:
        ok, reason = validate_address(entry, prefix)
        if not ok:
            logger.warning('Signatory address "%s" is invalid: %s', entry, reason or "unknown")
            issues.append(InvalidAddress(entry, reason or "unknown"))
        try:
            account_id = decode_address(entry)
        except InvalidAddress:
            undecodable.append(entry)
            continue
        by_account.setdefault(account_id, entry)

    count = len(by_account) + len(set(undecodable))
    threshold_errors: List[ValidationError] = []
    if threshold < 1:
        threshold_errors.append(InvalidThreshold(f"Multisig threshold must be at least 1, got {threshold}"))
    elif threshold > count:
        threshold_errors.append(ThresholdExceedsSignatories(threshold, count))

    if threshold_errors:
        if not issues:
            raise threshold_errors[0]
        raise MultisigSetupError([*issues, *threshold_errors])

    if undecodable:
        raise MultisigSetupError(issues, "derivation needs every signatory to decode")

    ordered = sort_account_ids(by_account)
    derived = derive_multisig_address(ordered, threshold, prefix)
    return MultisigConfig(
        threshold=threshold,
        signatories=tuple(encode_address(account_id, prefix) for account_id in ordered),
        derived_address=derived,
        prefix=prefix,
        issues=tuple(issues),
    )


def sorted_other_signatories(config: MultisigConfig, sender: str) -> List[str]:
    """Co-signers excluding the sender, in the order the pallet requires."""
    return [address for address in config.signatories if not same_account(address, sender)]
