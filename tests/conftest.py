from dataclasses import replace
from datetime import datetime
from decimal import Decimal

import pytest

from backend import app as app_module
from backend.models import Group


class InMemoryStore:
    def __init__(self):
        self.groups = {}
        self.expenses = {}
        self.payments = {}
        self._ids = 0

    def _next_id(self):
        self._ids += 1
        return self._ids

    def list_groups(self, member=None):
        return [g for g in self.groups.values() if member is None or member in g.members]

    def get_group(self, group_id):
        return self.groups.get(group_id)

    def create_group(self, name, created_by, members):
        group = Group(id=self._next_id(), name=name, created_by=created_by, members=list(members), created_at=datetime.now())
        self.groups[group.id] = group
        return group

    def list_members(self, group_id):
        return list(self.groups[group_id].members)

    def add_member(self, group_id, member):
        group = self.groups[group_id]
        if member in group.members:
            return False
        group.members.append(member)
        return True

    def list_expenses(self, group_id):
        return [e for e in self.expenses.values() if e.group_id == group_id]

    def add_expense(self, expense):
        expense_id = self._next_id()
        self.expenses[expense_id] = replace(expense, id=expense_id)
        return expense_id

    def delete_expense(self, group_id, expense_id):
        expense = self.expenses.get(expense_id)
        if not expense or expense.group_id != group_id:
            return False
        del self.expenses[expense_id]
        return True

    def list_payments(self, group_id):
        return [p for p in self.payments.values() if p.group_id == group_id]

    def add_payment(self, payment):
        payment_id = self._next_id()
        self.payments[payment_id] = replace(payment, id=payment_id)
        return payment_id


class StubRateClient:
    """Rates anchored to USD."""

    TABLE = {"USD": Decimal("1"), "SGD": Decimal("1.35"), "EUR": Decimal("0.9")}

    def __init__(self):
        self.requested = []

    def get_rates(self, base):
        self.requested.append(base)
        return dict(self.TABLE)


@pytest.fixture
def store(monkeypatch):
    fake = InMemoryStore()
    monkeypatch.setattr(app_module, "store", fake)
    return fake


@pytest.fixture
def rates(monkeypatch):
    stub = StubRateClient()
    monkeypatch.setattr(app_module, "rate_client", stub)
    return stub


@pytest.fixture
def client(store, rates):
    app_module.app.config["TESTING"] = True
    with app_module.app.test_client() as test_client:
        yield test_client


@pytest.fixture
def group(client):
    response = client.post(
        "/api/groups",
        json={"name": "Trip", "created_by": "a@x.com", "members": ["b@x.com", "c@x.com"]},
    )
    return response.get_json()
