"""
Spending summaries for the group analytics and personal dashboard views.

Everything is reported in one base currency and computed from the same
snapshot the balance endpoints use.
"""
from __future__ import annotations

from collections import Counter
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .balances import in_base_currency, member_net
from .models import Expense, Payment
from .money import ZERO, normalize_currency, round_money

DEFAULT_CATEGORY = "Other"


def _month_key(value: Optional[datetime]):
    if value is None:
        return None
    return (value.year, value.month)


def _shift_month(year: int, month: int, offset: int):
    index = year * 12 + (month - 1) + offset
    return index // 12, index % 12 + 1


def _category_label(category: Optional[str]) -> str:
    if not category or not str(category).strip():
        return DEFAULT_CATEGORY
    category = str(category).strip()
    return category[0].upper() + category[1:].lower()


def _member_share(expense: Expense, member: str, base_currency: str, rates: Mapping[str, Any]) -> Optional[Decimal]:
    split = expense.share_of(member)
    if split is None:
        return None
    return in_base_currency(split.amount_owed, expense.currency, base_currency, rates)


def monthly_totals(
    expenses: Iterable[Expense],
    base_currency: str,
    rates: Mapping[str, Any],
    today: date,
    member: Optional[str] = None,
    months: int = 6,
) -> List[Dict[str, Any]]:
    """Totals for the last ``months`` calendar months, oldest first.

    Group-wide expense totals by default; the member's own share when
    ``member`` is given.
    """
    base_currency = normalize_currency(base_currency)
    labels = []
    totals: Dict[tuple, Decimal] = {}
    for offset in range(months - 1, -1, -1):
        year, month = _shift_month(today.year, today.month, -offset)
        labels.append(((year, month), date(year, month, 1).strftime("%b %Y")))
        totals[(year, month)] = ZERO

    for expense in expenses:
        key = _month_key(expense.created_at)
        if key not in totals:
            continue
        if member is None:
            amount = in_base_currency(expense.amount, expense.currency, base_currency, rates)
        else:
            amount = _member_share(expense, member, base_currency, rates)
            if amount is None:
                continue
        totals[key] = round_money(totals[key] + amount)

    return [{"month": label, "total": totals[key]} for key, label in labels]


def member_contributions(expenses: Iterable[Expense], base_currency: str, rates: Mapping[str, Any]) -> Dict[str, Decimal]:
    base_currency = normalize_currency(base_currency)
    totals: Dict[str, Decimal] = {}
    for expense in expenses:
        if not expense.paid_by:
            continue
        amount = in_base_currency(expense.amount, expense.currency, base_currency, rates)
        totals[expense.paid_by] = round_money(totals.get(expense.paid_by, ZERO) + amount)
    return totals


def category_breakdown(
    expenses: Iterable[Expense],
    member: str,
    base_currency: str,
    rates: Mapping[str, Any],
    today: date,
    period: str = "month",
) -> Dict[str, Decimal]:
    if period not in ("month", "all"):
        raise ValueError("invalid_period")
    base_currency = normalize_currency(base_currency)
    current = (today.year, today.month)
    totals: Dict[str, Decimal] = {}
    for expense in expenses:
        share = _member_share(expense, member, base_currency, rates)
        if share is None:
            continue
        if period == "month" and _month_key(expense.created_at) != current:
            continue
        label = _category_label(expense.category)
        totals[label] = round_money(totals.get(label, ZERO) + share)
    return totals


def most_frequent_payer(expenses: Iterable[Expense]) -> Optional[str]:
    counts = Counter(expense.paid_by for expense in expenses if expense.paid_by)
    if not counts:
        return None
    # Counter keeps first-seen order on ties, so the earliest payer wins.
    return counts.most_common(1)[0][0]


def group_summary(
    expenses: List[Expense],
    payments: List[Payment],
    member: str,
    base_currency: str,
    rates: Mapping[str, Any],
    today: date,
) -> Dict[str, Any]:
    base_currency = normalize_currency(base_currency)
    current = (today.year, today.month)

    total_all = ZERO
    total_month = ZERO
    my_contributions = ZERO
    for expense in expenses:
        amount = in_base_currency(expense.amount, expense.currency, base_currency, rates)
        total_all = round_money(total_all + amount)
        if _month_key(expense.created_at) == current:
            total_month = round_money(total_month + amount)
        if expense.paid_by == member:
            my_contributions = round_money(my_contributions + amount)

    return {
        "currency": base_currency,
        "total_this_month": total_month,
        "total_group_expenses": total_all,
        "my_contributions": my_contributions,
        "net_balance": member_net(member, expenses, payments, base_currency, rates),
        "most_frequent_payer": most_frequent_payer(expenses),
        "monthly_totals": monthly_totals(expenses, base_currency, rates, today),
        "member_contributions": member_contributions(expenses, base_currency, rates),
    }


def member_dashboard(
    member: str,
    expenses: List[Expense],
    payments: List[Payment],
    base_currency: str,
    rates: Mapping[str, Any],
    today: date,
    period: str = "month",
) -> Dict[str, Any]:
    base_currency = normalize_currency(base_currency)
    current = (today.year, today.month)

    month_total = ZERO
    overall = ZERO
    active_months = set()
    for expense in expenses:
        share = _member_share(expense, member, base_currency, rates)
        if share is None:
            continue
        overall = round_money(overall + share)
        key = _month_key(expense.created_at)
        if key is not None:
            active_months.add(key)
        if key == current:
            month_total = round_money(month_total + share)

    average = round_money(overall / len(active_months)) if active_months else ZERO

    this_month = category_breakdown(expenses, member, base_currency, rates, today, "month")
    top_category = None
    top_amount = ZERO
    for label, amount in this_month.items():
        if not amount.is_nan() and amount > top_amount:
            top_category, top_amount = label, amount

    categories = this_month if period == "month" else category_breakdown(
        expenses, member, base_currency, rates, today, period
    )

    return {
        "currency": base_currency,
        "net_balance": member_net(member, expenses, payments, base_currency, rates),
        "monthly_total": month_total,
        "average_monthly": average,
        "top_category": top_category,
        "categories": categories,
        "monthly_totals": monthly_totals(expenses, base_currency, rates, today, member=member),
    }
