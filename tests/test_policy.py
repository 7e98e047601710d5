from datetime import datetime, timedelta, timezone

import pytest

from app.cache.errors import InvalidPolicy
from app.cache.policy import (
    MAX_INSTANT,
    MAX_SLIDING_EXPIRATION,
    CacheEntryOptions,
    as_utc,
    next_deadline,
    resolve,
)
from tests.conftest import T0, at


def test_relative_absolute_expiration_wins_over_explicit_instant():
    policy = CacheEntryOptions(
        absolute_expiration=at(500),
        absolute_expiration_relative_to_now=timedelta(seconds=30),
    )
    absolute, sliding = resolve(T0, policy)
    assert absolute == at(30)
    assert sliding is None


def test_explicit_absolute_expiration_is_used_as_is():
    absolute, sliding = resolve(T0, CacheEntryOptions(absolute_expiration=at(60)))
    assert absolute == at(60)
    assert sliding is None


def test_sliding_only_policy_has_no_absolute_deadline():
    policy = CacheEntryOptions(sliding_expiration=timedelta(seconds=10))
    assert resolve(T0, policy) == (None, timedelta(seconds=10))


@pytest.mark.parametrize("offset", [0, -1, -3600])
def test_absolute_expiration_not_in_future_is_rejected(offset):
    with pytest.raises(InvalidPolicy):
        resolve(T0, CacheEntryOptions(absolute_expiration=at(offset)))


def test_policy_without_any_strategy_is_rejected():
    with pytest.raises(InvalidPolicy, match="at least one expiration strategy"):
        resolve(T0, CacheEntryOptions())


@pytest.mark.parametrize("seconds", [0, -5])
def test_non_positive_sliding_expiration_is_rejected(seconds):
    with pytest.raises(InvalidPolicy):
        resolve(T0, CacheEntryOptions(sliding_expiration=timedelta(seconds=seconds)))


def test_non_positive_relative_expiration_is_rejected():
    policy = CacheEntryOptions(
        absolute_expiration_relative_to_now=timedelta(0),
        sliding_expiration=timedelta(seconds=10),
    )
    with pytest.raises(InvalidPolicy):
        resolve(T0, policy)


def test_invalid_policy_is_a_value_error():
    with pytest.raises(ValueError):
        resolve(T0, CacheEntryOptions())


def test_naive_instants_are_treated_as_utc():
    naive_now = T0.replace(tzinfo=None)
    absolute, _ = resolve(naive_now, CacheEntryOptions(absolute_expiration=at(60)))
    assert absolute == at(60)
    assert as_utc(naive_now).tzinfo is timezone.utc


def test_offset_instants_are_normalised_to_utc():
    plus_two = timezone(timedelta(hours=2))
    local = datetime(2026, 1, 1, 14, 1, 0, tzinfo=plus_two)
    absolute, _ = resolve(T0, CacheEntryOptions(absolute_expiration=local))
    assert absolute == at(60)
    assert absolute.tzinfo is timezone.utc


@pytest.mark.parametrize("duration", [timedelta.max, timedelta(days=999_999_000)])
def test_huge_relative_expiration_is_clamped_to_last_instant(duration):
    policy = CacheEntryOptions(absolute_expiration_relative_to_now=duration)
    absolute, _ = resolve(T0, policy)
    assert absolute == MAX_INSTANT
    assert next_deadline(T0, None, absolute) == MAX_INSTANT


def test_huge_sliding_expiration_is_clamped():
    _, sliding = resolve(T0, CacheEntryOptions(sliding_expiration=timedelta.max))
    assert sliding == MAX_SLIDING_EXPIRATION
    assert next_deadline(T0, sliding, None) == MAX_INSTANT


def test_absolute_instant_outside_utc_range_is_rejected():
    behind_utc = timezone(timedelta(hours=-1))
    too_late = datetime.max.replace(tzinfo=behind_utc)
    with pytest.raises(InvalidPolicy, match="representable range"):
        resolve(T0, CacheEntryOptions(absolute_expiration=too_late))


class TestNextDeadline:
    def test_absolute_only(self):
        assert next_deadline(T0, None, at(90)) == at(90)

    def test_sliding_only(self):
        assert next_deadline(T0, timedelta(seconds=10), None) == at(10)

    def test_sliding_is_capped_by_absolute(self):
        assert next_deadline(at(85), timedelta(seconds=10), at(90)) == at(90)

    def test_sliding_below_absolute(self):
        assert next_deadline(at(20), timedelta(seconds=10), at(90)) == at(30)

    def test_neither(self):
        with pytest.raises(InvalidPolicy):
            next_deadline(T0, None, None)

    def test_sliding_past_last_instant_is_clamped(self):
        late = MAX_INSTANT - timedelta(seconds=5)
        assert next_deadline(late, timedelta(seconds=10), None) == MAX_INSTANT
