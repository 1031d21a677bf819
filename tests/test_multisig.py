import pytest

from accounts import ALICE, BOB, address
from chain.address import decode_address, derive_multisig_account, encode_address, reencode
from errors import InvalidAddress, InvalidThreshold, MultisigSetupError, ThresholdExceedsSignatories
from multisig import derive_multisig_address, resolve, sorted_other_signatories

CHARLIE = address("charlie")


def test_signatory_order_does_not_change_result():
    first = resolve(2, [ALICE, BOB, CHARLIE], prefix=42)
    second = resolve(2, [CHARLIE, ALICE, BOB], prefix=42)
    assert first.derived_address == second.derived_address
    assert first.signatories == second.signatories
    assert sorted_other_signatories(first, ALICE) == sorted_other_signatories(second, ALICE)


def test_signatories_are_byte_sorted():
    config = resolve(2, [ALICE, BOB, CHARLIE], prefix=42)
    ids = [decode_address(a) for a in config.signatories]
    assert ids == sorted(ids)
    assert config.is_valid
    expected = derive_multisig_account(ids, 2)
    assert decode_address(config.derived_address) == expected


def test_sender_is_added_to_the_set():
    with_sender = resolve(2, [BOB, CHARLIE], ALICE, prefix=42)
    explicit = resolve(2, [ALICE, BOB, CHARLIE], prefix=42)
    assert with_sender.derived_address == explicit.derived_address

    excluded = resolve(2, [BOB, CHARLIE], ALICE, prefix=42, sender_is_member=False)
    assert len(excluded.signatories) == 2


def test_duplicates_count_once():
    config = resolve(2, [ALICE, BOB, ALICE, " " + BOB + " "], prefix=42)
    assert len(config.signatories) == 2


def test_other_signatories_exclude_sender():
    config = resolve(2, [ALICE, BOB, CHARLIE], prefix=42)
    others = sorted_other_signatories(config, BOB)
    assert BOB not in others
    assert len(others) == 2
    assert [decode_address(a) for a in others] == sorted(decode_address(a) for a in others)


def test_other_signatories_match_sender_on_any_prefix():
    config = resolve(2, [ALICE, BOB, CHARLIE], prefix=42)
    others = sorted_other_signatories(config, reencode(BOB, 0))
    assert [decode_address(a) for a in others] == sorted([decode_address(ALICE), decode_address(CHARLIE)])


def test_threshold_below_one_raises():
    with pytest.raises(InvalidThreshold):
        resolve(0, [ALICE, BOB], prefix=42)


def test_threshold_above_count_raises():
    with pytest.raises(ThresholdExceedsSignatories) as excinfo:
        resolve(3, [ALICE, BOB], prefix=42)
    assert excinfo.value.threshold == 3
    assert excinfo.value.count == 2


def test_invalid_entries_are_all_collected():
    with pytest.raises(MultisigSetupError) as excinfo:
        resolve(2, [ALICE, "bogus-1", "bogus-2"], prefix=42)
    whiches = [err.which for err in excinfo.value.errors if isinstance(err, InvalidAddress)]
    assert whiches == ["bogus-1", "bogus-2"]


def test_threshold_error_aggregated_with_address_issues():
    with pytest.raises(MultisigSetupError) as excinfo:
        resolve(5, [ALICE, "bogus"], prefix=42)
    kinds = {type(err) for err in excinfo.value.errors}
    assert kinds == {InvalidAddress, ThresholdExceedsSignatories}


def test_prefix_mismatch_still_derives_but_is_not_valid():
    foreign = reencode(BOB, 90)
    config = resolve(2, [ALICE, foreign], prefix=42)
    assert config.derived_address is not None
    assert not config.is_valid
    assert config.issues[0].which == foreign
    with pytest.raises(MultisigSetupError):
        config.require_valid()


def test_derived_address_uses_chain_prefix():
    config = resolve(1, [reencode(ALICE, 90), reencode(BOB, 90)], prefix=90)
    assert config.derived_address == encode_address(decode_address(config.derived_address), 90)
    assert config.signatories[0] == reencode(config.signatories[0], 90)


def test_derive_multisig_address_matches_resolver():
    config = resolve(2, [ALICE, BOB], prefix=42)
    assert derive_multisig_address([decode_address(BOB), decode_address(ALICE)], 2, 42) == config.derived_address
