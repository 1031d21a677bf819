from datetime import date, datetime, timedelta, timezone

import pytest

import config
from chain.context import ChainContext, ChainReference, offline_context
from errors import StaleOrPastUnlockDate, UnsupportedChain
from estimator import estimate_block, normalize_target, parse_unlock_date, resolve_unlock_target

UTC = timezone.utc
REFERENCE = ChainReference(
    block_height=1000,
    timestamp=datetime(2024, 1, 1, tzinfo=UTC),
    block_interval_seconds=6.0,
)
NOW = datetime(2024, 1, 1, 8, 30, tzinfo=UTC)


def test_normalize_target_is_noon_of_next_day():
    assert normalize_target(date(2024, 2, 29)) == datetime(2024, 3, 1, 12, tzinfo=UTC)


def test_linear_extrapolation():
    # 2024-01-11T12:00Z is 10.5 days after the reference.
    assert estimate_block(date(2024, 1, 10), REFERENCE, now=NOW) == 1000 + 151200


def test_reference_plus_six_hundred_seconds():
    reference = ChainReference(block_height=1000, timestamp=datetime(2024, 1, 1, 11, 50, tzinfo=UTC))
    target = date(2023, 12, 31)
    # normalized target is 2024-01-01T12:00Z, 600s after the reference
    assert estimate_block(target, reference, now=datetime(2023, 12, 30, tzinfo=UTC)) == 1100


def test_halves_round_up():
    reference = ChainReference(block_height=0, timestamp=datetime(2024, 1, 2, 11, 59, 57, tzinfo=UTC))
    assert estimate_block(date(2024, 1, 1), reference, now=datetime(2023, 12, 1, tzinfo=UTC)) == 1


def test_estimate_is_monotonic_in_date():
    blocks = [estimate_block(date(2024, 1, 2) + timedelta(days=i), REFERENCE, now=NOW) for i in range(30)]
    assert all(b is not None for b in blocks)
    assert blocks == sorted(blocks)
    assert all(later - earlier == 14400 for earlier, later in zip(blocks, blocks[1:]))


@pytest.mark.parametrize("target", [date(2024, 1, 1), date(2023, 12, 31), "2020-05-05"])
def test_today_or_past_has_no_estimate(target):
    assert estimate_block(target, REFERENCE, now=NOW) is None


def test_string_and_datetime_inputs():
    assert parse_unlock_date("2024-01-10") == date(2024, 1, 10)
    assert parse_unlock_date(datetime(2024, 1, 10, 23, tzinfo=timezone(timedelta(hours=-3)))) == date(2024, 1, 11)
    assert parse_unlock_date("not a date") is None
    assert estimate_block("2024-01-10", REFERENCE, now=NOW) == estimate_block(date(2024, 1, 10), REFERENCE, now=NOW)


def test_resolve_against_pinned_reference():
    context = offline_context(config.settings.chain, 42)
    now = datetime(2023, 3, 31, 14, tzinfo=UTC)
    target = resolve_unlock_target("2023-04-01", context, now=now)
    assert target.calendar_date == date(2023, 4, 1)
    assert target.resolved_block == 4752207 + 28068


def test_resolve_unknown_prefix_raises_unsupported_chain():
    context = ChainContext(address_prefix=7, token_symbol="X", token_decimals=12)
    with pytest.raises(UnsupportedChain) as excinfo:
        resolve_unlock_target("2030-01-01", context, now=NOW)
    assert excinfo.value.prefix == 7


@pytest.mark.parametrize("target", ["2024-01-01", "garbage"])
def test_resolve_rejects_past_or_invalid(target):
    context = ChainContext(address_prefix=42, token_symbol="UNIT", token_decimals=8, reference=REFERENCE)
    with pytest.raises(StaleOrPastUnlockDate):
        resolve_unlock_target(target, context, now=NOW)


def test_reference_rejects_naive_timestamp():
    with pytest.raises(ValueError):
        ChainReference(block_height=1, timestamp=datetime(2024, 1, 1))
