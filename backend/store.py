from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from .db import Database
from .models import Expense, Group, Payment, Split


class LedgerStore:
    """Reads and writes groups, expenses and payments as model objects."""

    def __init__(self, database: Database) -> None:
        self.db = database

    # Groups

    def list_groups(self, member: Optional[str] = None) -> List[Group]:
        if member is None:
            rows = self.db.fetch_all(
                "SELECT id, group_name, created_by, created_at FROM `groups` ORDER BY group_name"
            )
        else:
            rows = self.db.fetch_all(
                """
                SELECT g.id, g.group_name, g.created_by, g.created_at
                FROM `groups` g
                JOIN group_members gm ON gm.group_id = g.id
                WHERE gm.member = %s
                ORDER BY g.group_name
                """,
                (member,),
            )
        members = self._members_by_group([row["id"] for row in rows])
        return [self._group(row, members.get(row["id"], [])) for row in rows]

    def get_group(self, group_id: int) -> Optional[Group]:
        row = self.db.fetch_one(
            "SELECT id, group_name, created_by, created_at FROM `groups` WHERE id=%s",
            (group_id,),
        )
        if not row:
            return None
        return self._group(row, self.list_members(group_id))

    def create_group(self, name: str, created_by: str, members: List[str]) -> Group:
        created_at = datetime.now()
        with self.db.cursor() as cursor:
            cursor.execute(
                "INSERT INTO `groups` (group_name, created_by, created_at) VALUES (%s, %s, %s)",
                (name, created_by, created_at),
            )
            group_id = cursor.lastrowid
            cursor.executemany(
                "INSERT INTO group_members (group_id, member) VALUES (%s, %s)",
                [(group_id, member) for member in members],
            )
        return Group(id=group_id, name=name, created_by=created_by, members=list(members), created_at=created_at)

    def list_members(self, group_id: int) -> List[str]:
        rows = self.db.fetch_all(
            "SELECT member FROM group_members WHERE group_id=%s ORDER BY id",
            (group_id,),
        )
        return [row["member"] for row in rows]

    def add_member(self, group_id: int, member: str) -> bool:
        existing = self.db.fetch_one(
            "SELECT id FROM group_members WHERE group_id=%s AND member=%s",
            (group_id, member),
        )
        if existing:
            return False
        self.db.execute(
            "INSERT INTO group_members (group_id, member) VALUES (%s, %s)",
            (group_id, member),
        )
        return True

    # Expenses

    def list_expenses(self, group_id: int) -> List[Expense]:
        rows = self.db.fetch_all(
            """
            SELECT id, group_id, description, amount, currency, paid_by, split_type, category, created_at
            FROM expenses
            WHERE group_id=%s
            ORDER BY created_at DESC, id DESC
            """,
            (group_id,),
        )
        if not rows:
            return []

        expense_ids = [row["id"] for row in rows]
        placeholders = ", ".join(["%s"] * len(expense_ids))
        split_rows = self.db.fetch_all(
            f"""
            SELECT expense_id, member, amount_owed
            FROM expense_splits
            WHERE expense_id IN ({placeholders})
            ORDER BY expense_id, position
            """,
            expense_ids,
        )
        splits_map: Dict[int, List[Split]] = {}
        for split in split_rows:
            splits_map.setdefault(split["expense_id"], []).append(Split(split["member"], split["amount_owed"]))

        return [
            Expense(
                id=row["id"],
                group_id=row["group_id"],
                description=row["description"],
                amount=row["amount"],
                currency=row["currency"],
                paid_by=row["paid_by"],
                split_policy=row["split_type"],
                splits=tuple(splits_map.get(row["id"], [])),
                category=row["category"],
                created_at=row["created_at"],
            )
            for row in rows
        ]

    def add_expense(self, expense: Expense) -> int:
        with self.db.cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO expenses (group_id, description, amount, currency, paid_by, split_type, category, created_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    expense.group_id,
                    expense.description,
                    str(expense.amount),
                    expense.currency,
                    expense.paid_by,
                    expense.split_policy.value,
                    expense.category,
                    expense.created_at or datetime.now(),
                ),
            )
            expense_id = cursor.lastrowid
            if expense.splits:
                cursor.executemany(
                    """
                    INSERT INTO expense_splits (expense_id, position, member, amount_owed)
                    VALUES (%s, %s, %s, %s)
                    """,
                    [
                        (expense_id, position, split.member, str(split.amount_owed))
                        for position, split in enumerate(expense.splits)
                    ],
                )
        return expense_id

    def delete_expense(self, group_id: int, expense_id: int) -> bool:
        expense = self.db.fetch_one(
            "SELECT id FROM expenses WHERE id=%s AND group_id=%s",
            (expense_id, group_id),
        )
        if not expense:
            return False
        with self.db.cursor() as cursor:
            cursor.execute("DELETE FROM expense_splits WHERE expense_id=%s", (expense_id,))
            cursor.execute("DELETE FROM expenses WHERE id=%s", (expense_id,))
        return True

    # Payments

    def list_payments(self, group_id: int) -> List[Payment]:
        rows = self.db.fetch_all(
            """
            SELECT id, group_id, from_user, to_user, amount, currency, payment_date
            FROM payments
            WHERE group_id=%s
            ORDER BY payment_date DESC, id DESC
            """,
            (group_id,),
        )
        return [Payment(**row) for row in rows]

    def add_payment(self, payment: Payment) -> int:
        return self.db.execute(
            """
            INSERT INTO payments (group_id, from_user, to_user, amount, currency, payment_date)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (
                payment.group_id,
                payment.from_user,
                payment.to_user,
                str(payment.amount),
                payment.currency,
                payment.payment_date or datetime.now(),
            ),
        )

    def _members_by_group(self, group_ids: List[int]) -> Dict[int, List[str]]:
        if not group_ids:
            return {}
        placeholders = ", ".join(["%s"] * len(group_ids))
        rows = self.db.fetch_all(
            f"SELECT group_id, member FROM group_members WHERE group_id IN ({placeholders}) ORDER BY group_id, id",
            group_ids,
        )
        members: Dict[int, List[str]] = {}
        for row in rows:
            members.setdefault(row["group_id"], []).append(row["member"])
        return members

    def _group(self, row: Dict[str, Any], members: List[str]) -> Group:
        return Group(
            id=row["id"],
            name=row["group_name"],
            created_by=row["created_by"],
            members=members,
            created_at=row.get("created_at"),
        )
