from datetime import datetime, timedelta, timezone
from typing import NamedTuple

from pydantic import BaseModel

from app.cache.errors import InvalidPolicy

# Latest representable instant; deadlines past it are clamped here.
MAX_INSTANT = datetime.max.replace(tzinfo=timezone.utc)
# Any sliding window at least this long never ends before MAX_INSTANT.
MAX_SLIDING_EXPIRATION = MAX_INSTANT - datetime.min.replace(tzinfo=timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def shift(moment: datetime, duration: timedelta) -> datetime:
    """``moment + duration`` for a positive duration, clamped to ``MAX_INSTANT``."""
    try:
        return moment + duration
    except OverflowError:
        return MAX_INSTANT


class CacheEntryOptions(BaseModel):
    """Expiration request supplied by the caller of ``set``."""

    absolute_expiration: datetime | None = None
    absolute_expiration_relative_to_now: timedelta | None = None
    sliding_expiration: timedelta | None = None


class ResolvedExpiration(NamedTuple):
    absolute_expiration: datetime | None
    sliding_expiration: timedelta | None


def resolve(now: datetime, policy: CacheEntryOptions) -> ResolvedExpiration:
    """Turn a caller policy into a concrete absolute deadline and sliding interval.

    A relative absolute expiration wins over an explicit instant. Durations
    that reach past the last representable instant are clamped to it. Raises
    ``InvalidPolicy`` when the policy cannot give the entry a lifetime.
    """
    now = as_utc(now)
    if policy.absolute_expiration_relative_to_now is not None:
        if policy.absolute_expiration_relative_to_now <= timedelta(0):
            raise InvalidPolicy(
                "absolute_expiration_relative_to_now must be a positive duration"
            )
        absolute = shift(now, policy.absolute_expiration_relative_to_now)
    elif policy.absolute_expiration is not None:
        try:
            absolute = as_utc(policy.absolute_expiration)
        except OverflowError as exc:
            raise InvalidPolicy(
                "absolute_expiration is outside the representable range"
            ) from exc
        if absolute <= now:
            raise InvalidPolicy(
                f"absolute_expiration {absolute.isoformat()} is not in the future"
            )
    else:
        absolute = None

    sliding = policy.sliding_expiration
    if absolute is None and sliding is None:
        raise InvalidPolicy("an entry must specify at least one expiration strategy")
    if sliding is not None:
        if sliding <= timedelta(0):
            raise InvalidPolicy("sliding_expiration must be a positive duration")
        sliding = min(sliding, MAX_SLIDING_EXPIRATION)

    return ResolvedExpiration(absolute, sliding)


def next_deadline(
    now: datetime,
    sliding_expiration: timedelta | None,
    absolute_expiration: datetime | None,
) -> datetime:
    """Effective ``expires_at`` at ``now``; sliding renewal is capped by the absolute deadline."""
    if sliding_expiration is None:
        if absolute_expiration is None:
            raise InvalidPolicy("an entry must specify at least one expiration strategy")
        return absolute_expiration
    deadline = shift(now, sliding_expiration)
    if absolute_expiration is not None and absolute_expiration < deadline:
        return absolute_expiration
    return deadline
