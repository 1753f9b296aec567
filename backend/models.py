"""
Value types shared by the settlement core and the HTTP layer.

Records are immutable once built. Amounts are cent-quantized Decimals and
currency codes are normalized here, once, so the rest of the code can compare
them directly.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Tuple

from .money import normalize_currency, round_money


class SplitPolicy(str, Enum):
    EQUAL = "equal"
    PERCENT = "percent"
    EXACT = "exact"

    @classmethod
    def parse(cls, value) -> "SplitPolicy":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value or "equal").strip().lower())
        except ValueError:
            raise ValueError("invalid_split_type") from None


@dataclass(frozen=True)
class Split:
    member: str
    amount_owed: Decimal

    def __post_init__(self):
        object.__setattr__(self, "amount_owed", round_money(self.amount_owed))


@dataclass(frozen=True)
class Expense:
    id: Optional[int]
    amount: Decimal
    currency: Optional[str]
    paid_by: str
    participants: Tuple[str, ...] = ()
    split_policy: SplitPolicy = SplitPolicy.EQUAL
    splits: Tuple[Split, ...] = ()
    created_at: Optional[datetime] = None
    description: str = ""
    category: Optional[str] = None
    group_id: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "amount", round_money(self.amount))
        object.__setattr__(self, "currency", normalize_currency(self.currency))
        object.__setattr__(self, "split_policy", SplitPolicy.parse(self.split_policy))
        object.__setattr__(self, "splits", tuple(self.splits))
        participants = tuple(self.participants) or tuple(split.member for split in self.splits)
        object.__setattr__(self, "participants", participants)

    @property
    def is_self_expense(self) -> bool:
        # Money spent by the payer on themselves; nothing is owed to anyone.
        if not self.splits:
            return True
        return len(self.splits) == 1 and self.splits[0].member == self.paid_by

    def share_of(self, member: str) -> Optional[Split]:
        for split in self.splits:
            if split.member == member:
                return split
        return None


@dataclass(frozen=True)
class Payment:
    id: Optional[int]
    from_user: str
    to_user: str
    amount: Decimal
    currency: Optional[str] = None
    payment_date: Optional[datetime] = None
    group_id: Optional[int] = None

    def __post_init__(self):
        object.__setattr__(self, "amount", round_money(self.amount))
        object.__setattr__(self, "currency", normalize_currency(self.currency))


@dataclass(frozen=True)
class Transfer:
    from_user: str
    to_user: str
    amount: Decimal

    def __post_init__(self):
        object.__setattr__(self, "amount", round_money(self.amount))


@dataclass
class Group:
    id: int
    name: str
    created_by: str
    members: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
