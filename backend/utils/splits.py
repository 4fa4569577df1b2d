"""Split calculation: turn an expense amount and a split method into per-member shares.

All amounts are integers in the smallest currency unit (paise). Every function
here is pure and returns shares whose amounts add up exactly to the expense
amount.
"""

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Sequence, Union

from utils.currency import DEFAULT_CURRENCY, MAX_AMOUNT, format_currency
from utils.errors import InvalidAmount, InvalidParticipants, SplitMismatch, ValidationError


PERCENTAGE_TOLERANCE = 0.01
# How far a supplied custom percentage may drift from amount/total before we reject it
CUSTOM_PERCENTAGE_TOLERANCE = 0.5


@dataclass(frozen=True)
class SplitShare:
    user_id: int
    amount: int
    percentage: Optional[float] = None


@dataclass(frozen=True)
class SplitEntry:
    """One requested entry of a percentage or custom split."""
    user_id: int
    amount: Optional[int] = None
    percentage: Optional[float] = None


@dataclass(frozen=True)
class EqualSplit:
    participant_ids: tuple[int, ...]
    name = "EQUAL"


@dataclass(frozen=True)
class PercentageSplit:
    entries: tuple[SplitEntry, ...]
    name = "PERCENTAGE"


@dataclass(frozen=True)
class CustomSplit:
    entries: tuple[SplitEntry, ...]
    name = "CUSTOM"


SplitMethod = Union[EqualSplit, PercentageSplit, CustomSplit]


def _round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _share_percentage(part: int, amount: int) -> float:
    return round(part / amount * 100, 2)


def _check_amount(amount: int) -> None:
    if amount <= 0:
        raise InvalidAmount(f"Expense amount must be positive, got {format_currency(amount)}")
    if amount > MAX_AMOUNT:
        raise InvalidAmount(f"Expense amount cannot exceed {format_currency(MAX_AMOUNT)}")


def _check_unique(user_ids: Sequence[int]) -> None:
    if not user_ids:
        raise InvalidParticipants("An expense must be split between at least one member")
    seen = set()
    for user_id in user_ids:
        if user_id in seen:
            raise InvalidParticipants(f"Member {user_id} appears more than once in the split")
        seen.add(user_id)


def equal_split(amount: int, participant_ids: Sequence[int]) -> list[SplitShare]:
    """
    Split equally; leftover paise go one each to the first participants.

    Example: 10000 among three -> 3334, 3333, 3333.
    """
    if len(participant_ids) == 0:
        raise InvalidParticipants("An expense must be split between at least one member")
    _check_amount(amount)
    _check_unique(participant_ids)

    n = len(participant_ids)
    share_per_person = amount // n
    remainder = amount % n

    shares = []
    for idx, user_id in enumerate(participant_ids):
        # First participants get the remainder paise
        part = share_per_person + (1 if idx < remainder else 0)
        shares.append(SplitShare(user_id=user_id, amount=part, percentage=_share_percentage(part, amount)))
    return shares


def percentage_split(amount: int, entries: Sequence[SplitEntry]) -> list[SplitShare]:
    """
    Split by percentages that must total 100.

    Every entry but the last is rounded to the nearest paise; the last one
    takes whatever is left so the shares reconstitute the amount exactly.
    """
    _check_amount(amount)
    _check_unique([e.user_id for e in entries])

    for entry in entries:
        if entry.percentage is None:
            raise ValidationError(f"Percentage is required for member {entry.user_id}")
        if not math.isfinite(entry.percentage):
            raise ValidationError(f"Percentage for member {entry.user_id} must be a finite number")
        if entry.percentage < 0:
            raise ValidationError(f"Percentage for member {entry.user_id} cannot be negative")

    total_percentage = sum(e.percentage for e in entries)
    if abs(total_percentage - 100) > PERCENTAGE_TOLERANCE:
        raise SplitMismatch(f"percentages total {total_percentage:.2f}% must equal 100%")

    shares = []
    allocated = 0
    for entry in entries[:-1]:
        part = _round_half_up(Decimal(str(entry.percentage)) * amount / 100)
        allocated += part
        shares.append(SplitShare(user_id=entry.user_id, amount=part, percentage=entry.percentage))

    last = entries[-1]
    remainder = amount - allocated
    if remainder < 0:
        raise SplitMismatch(
            f"percentages cannot be applied to {format_currency(amount)} without a negative share"
        )
    shares.append(SplitShare(user_id=last.user_id, amount=remainder, percentage=last.percentage))
    return shares


def validate_custom_split(
    amount: int,
    entries: Sequence[SplitEntry],
    currency: str = DEFAULT_CURRENCY,
) -> list[SplitShare]:
    """
    Validate explicit amounts and return them as shares.

    The amounts are authoritative. A supplied percentage within half a point of
    amount/total is normalised to the recomputed value; anything further off is
    rejected as inconsistent.
    """
    _check_amount(amount)
    _check_unique([e.user_id for e in entries])

    for entry in entries:
        if entry.amount is None:
            raise ValidationError(f"Amount is required for member {entry.user_id}")
        if entry.amount < 0:
            raise ValidationError(f"Amount for member {entry.user_id} cannot be negative")

    total = sum(e.amount for e in entries)
    if total != amount:
        raise SplitMismatch(
            f"splits total {format_currency(total, currency)} must equal "
            f"expense amount {format_currency(amount, currency)}"
        )

    shares = []
    for entry in entries:
        percentage = None
        if entry.percentage is not None:
            if not math.isfinite(entry.percentage):
                raise ValidationError(f"Percentage for member {entry.user_id} must be a finite number")
            percentage = _share_percentage(entry.amount, amount)
            if abs(percentage - entry.percentage) > CUSTOM_PERCENTAGE_TOLERANCE:
                raise SplitMismatch(
                    f"member {entry.user_id} percentage {entry.percentage:.2f}% does not match "
                    f"{format_currency(entry.amount, currency)} of {format_currency(amount, currency)} "
                    f"({percentage:.2f}%)"
                )
        shares.append(SplitShare(user_id=entry.user_id, amount=entry.amount, percentage=percentage))
    return shares


def rescale_split(old_amount: int, shares: Sequence[SplitShare], new_amount: int) -> list[SplitShare]:
    """
    Scale existing shares proportionally to a new total.

    Uses largest remainders so no share goes negative and the total is exact.
    Ties go to the earlier participant.
    """
    _check_amount(new_amount)
    if not shares:
        raise InvalidParticipants("An expense must be split between at least one member")

    scaled = []
    for idx, share in enumerate(shares):
        exact = Decimal(share.amount) * new_amount / old_amount
        floor = int(exact)
        scaled.append([floor, exact - floor, idx])

    leftover = new_amount - sum(s[0] for s in scaled)
    for item in sorted(scaled, key=lambda s: (-s[1], s[2]))[:leftover]:
        item[0] += 1

    return [
        SplitShare(
            user_id=share.user_id,
            amount=part,
            percentage=_share_percentage(part, new_amount) if share.percentage is not None else None,
        )
        for share, (part, _, _) in zip(shares, scaled)
    ]


def build_split_method(
    name: str,
    split_between: Sequence[int] = (),
    entries: Sequence[SplitEntry] = (),
) -> SplitMethod:
    """Construct the split variant for a method name coming off the wire."""
    if name == "EQUAL":
        return EqualSplit(participant_ids=tuple(split_between))
    if name == "PERCENTAGE":
        return PercentageSplit(entries=tuple(entries))
    if name == "CUSTOM":
        return CustomSplit(entries=tuple(entries))
    raise ValidationError(f"Unsupported split method '{name}'")


def split_participants(method: SplitMethod) -> list[int]:
    if isinstance(method, EqualSplit):
        return list(method.participant_ids)
    return [e.user_id for e in method.entries]


def compute_splits(amount: int, method: SplitMethod, currency: str = DEFAULT_CURRENCY) -> list[SplitShare]:
    if isinstance(method, EqualSplit):
        return equal_split(amount, method.participant_ids)
    if isinstance(method, PercentageSplit):
        return percentage_split(amount, method.entries)
    return validate_custom_split(amount, method.entries, currency)
