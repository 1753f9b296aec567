from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .models import Split, SplitPolicy
from .money import CENT, round_money, to_decimal

HUNDRED = Decimal("100")


def compute_splits(
    amount: Any,
    policy: SplitPolicy,
    participants: Sequence[str],
    payer: str,
    policy_input: Optional[Mapping[str, Any]] = None,
) -> List[Split]:
    """
    Materialize what each participant owes for one expense.

    EQUAL divides the amount itself and hands the leftover cents to the first
    participant. PERCENT and EXACT trust ``policy_input``; run
    ``validate_split_input`` first.
    """
    policy = SplitPolicy.parse(policy)
    amount = round_money(amount)
    participants = list(participants)
    policy_input = policy_input or {}

    if policy is SplitPolicy.EQUAL:
        return _equal_splits(amount, participants, payer)
    if policy is SplitPolicy.PERCENT:
        return [
            Split(member, round_money(to_decimal(policy_input.get(member, 0)) / HUNDRED * amount))
            for member in participants
        ]
    return [Split(member, round_money(policy_input.get(member, 0))) for member in participants]


def _equal_splits(amount: Decimal, participants: List[str], payer: str) -> List[Split]:
    if not participants:
        return []
    if len(participants) == 1 and participants[0] == payer:
        return []

    count = len(participants)
    base_share = (amount / count).quantize(CENT, rounding=ROUND_FLOOR)
    remainder = round_money(amount - base_share * count)

    shares = [base_share] * count
    shares[0] = base_share + remainder
    return [Split(member, share) for member, share in zip(participants, shares)]


def validate_split_input(
    amount: Any,
    policy: SplitPolicy,
    participants: Sequence[str],
    policy_input: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Decimal]:
    """
    Gate run by the expense-creation workflow before ``compute_splits``.

    Returns the per-member inputs as Decimals. Raises ValueError carrying an
    error code when the input cannot produce a consistent split.
    """
    policy = SplitPolicy.parse(policy)
    try:
        amount = round_money(amount)
    except (ValueError, InvalidOperation):
        raise ValueError("invalid_amount") from None
    if not amount.is_finite() or amount <= 0:
        raise ValueError("invalid_amount")

    if not participants:
        raise ValueError("missing_participants")
    if len(set(participants)) != len(participants):
        raise ValueError("duplicate_participant")

    if policy is SplitPolicy.EQUAL:
        return {}

    policy_input = policy_input or {}
    unknown = set(policy_input) - set(participants)
    if unknown:
        raise ValueError("split_member_not_participant")

    values: Dict[str, Decimal] = {}
    for member in participants:
        try:
            value = to_decimal(policy_input.get(member, 0))
        except (ValueError, InvalidOperation):
            raise ValueError("invalid_split_value") from None
        if not value.is_finite() or value < 0:
            raise ValueError("invalid_split_value")
        values[member] = value

    total = round_money(sum(values.values(), Decimal("0")))
    if policy is SplitPolicy.PERCENT and total != HUNDRED:
        raise ValueError("percent_total_mismatch")
    if policy is SplitPolicy.EXACT and total != amount:
        raise ValueError("exact_total_mismatch")
    return values
