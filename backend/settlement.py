from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, List, Mapping

from .models import Transfer
from .money import is_zero, round_money

logger = logging.getLogger(__name__)


def plan_settlement(balances: Mapping[str, Any]) -> List[Transfer]:
    """
    Suggest debtor -> creditor transfers that bring every balance to zero.

    Greedy: the largest debtor pays the largest creditor until one of them is
    square, then the next one steps in. Produces at most
    ``len(debtors) + len(creditors) - 1`` transfers; not always the global
    minimum.
    """
    debtors = []
    creditors = []

    for member, balance in balances.items():
        amount = round_money(balance)
        if not amount.is_finite() or is_zero(amount):
            continue
        if amount < 0:
            debtors.append({"member": member, "amount": amount})
        else:
            creditors.append({"member": member, "amount": amount})

    debtors.sort(key=lambda entry: entry["amount"])
    creditors.sort(key=lambda entry: entry["amount"], reverse=True)

    transfers: List[Transfer] = []
    debtor_idx = 0
    creditor_idx = 0

    while debtor_idx < len(debtors) and creditor_idx < len(creditors):
        debtor = debtors[debtor_idx]
        creditor = creditors[creditor_idx]

        amount: Decimal = round_money(min(-debtor["amount"], creditor["amount"]))
        if not is_zero(amount):
            transfers.append(Transfer(debtor["member"], creditor["member"], amount))

        debtor["amount"] = round_money(debtor["amount"] + amount)
        creditor["amount"] = round_money(creditor["amount"] - amount)

        if is_zero(debtor["amount"]):
            debtor_idx += 1
        if is_zero(creditor["amount"]):
            creditor_idx += 1

    logger.debug("Planned %d transfers for %d debtors and %d creditors", len(transfers), len(debtors), len(creditors))
    return transfers
