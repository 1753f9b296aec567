from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Dict, Iterable, Mapping

from .currency import convert
from .models import Expense, Payment
from .money import ZERO, normalize_currency, round_money

logger = logging.getLogger(__name__)


def in_base_currency(amount: Decimal, currency: str, base_currency: str, rates: Mapping[str, Any]) -> Decimal:
    # Records saved without a currency are taken to be in the viewed currency.
    return convert(amount, currency or base_currency, base_currency, rates)


def compute_balances(
    members: Iterable[str],
    expenses: Iterable[Expense],
    payments: Iterable[Payment],
    base_currency: str,
    rates: Mapping[str, Any],
) -> Dict[str, Decimal]:
    """
    Fold expenses and payments into one net balance per member.

    Positive means the member is owed money, negative means they owe. Handles
    that are not in ``members`` are ignored.
    """
    base_currency = normalize_currency(base_currency)
    balances: Dict[str, Decimal] = {member: ZERO for member in members}

    def apply(member: str, delta: Decimal) -> None:
        if member in balances:
            balances[member] = round_money(balances[member] + delta)

    for expense in expenses:
        if expense.is_self_expense:
            continue
        debits = [
            (split.member, in_base_currency(split.amount_owed, expense.currency, base_currency, rates))
            for split in expense.splits
        ]
        # The payer's credit is built from the converted debits so the group
        # still nets to zero after each share is rounded in the base currency.
        residual = expense.amount - sum((split.amount_owed for split in expense.splits), ZERO)
        credit = in_base_currency(residual, expense.currency, base_currency, rates)
        for _, debit in debits:
            credit += debit
        apply(expense.paid_by, credit)
        for member, debit in debits:
            apply(member, -debit)

    logger.debug("Balances after expenses: %s", balances)

    for payment in payments:
        amount = in_base_currency(payment.amount, payment.currency, base_currency, rates)
        apply(payment.from_user, amount)
        apply(payment.to_user, -amount)

    logger.debug("Final balances: %s", balances)
    return balances


def compute_member_ledger(
    member: str,
    friends: Iterable[str],
    expenses: Iterable[Expense],
    payments: Iterable[Payment],
    base_currency: str,
    rates: Mapping[str, Any],
) -> Dict[str, Decimal]:
    """Net position of ``member`` against each friend; positive means the friend owes them."""
    base_currency = normalize_currency(base_currency)
    ledger: Dict[str, Decimal] = {friend: ZERO for friend in friends if friend != member}

    def apply(friend: str, delta: Decimal) -> None:
        if friend in ledger:
            ledger[friend] = round_money(ledger[friend] + delta)

    for expense in expenses:
        if expense.is_self_expense:
            continue
        if expense.paid_by == member:
            for split in expense.splits:
                if split.member != member:
                    apply(split.member, in_base_currency(split.amount_owed, expense.currency, base_currency, rates))
        else:
            own = expense.share_of(member)
            if own is not None:
                apply(expense.paid_by, -in_base_currency(own.amount_owed, expense.currency, base_currency, rates))

    for payment in payments:
        amount = in_base_currency(payment.amount, payment.currency, base_currency, rates)
        if payment.from_user == member:
            apply(payment.to_user, amount)
        elif payment.to_user == member:
            apply(payment.from_user, -amount)

    return ledger


def member_net(member: str, expenses: Iterable[Expense], payments: Iterable[Payment], base_currency: str, rates: Mapping[str, Any]) -> Decimal:
    balances = compute_balances([member], expenses, payments, base_currency, rates)
    return balances[member]
