from __future__ import annotations

import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

import requests
from flask import Flask, jsonify, request
from flask_cors import CORS

from .analytics import group_summary, member_dashboard
from .balances import compute_balances, compute_member_ledger
from .config import config
from .currency import ExchangeRateClient, RateFetchError
from .db import db
from .models import Expense, Payment, SplitPolicy
from .money import is_currency_code, is_zero, normalize_currency, round_money, to_float
from .settlement import plan_settlement
from .splits import compute_splits, validate_split_input
from .store import LedgerStore

logger = logging.getLogger(__name__)

store = LedgerStore(db)
rate_client = ExchangeRateClient(
    api_key=config.EXCHANGE_RATE_API_KEY,
    api_url=config.EXCHANGE_RATE_API_URL,
    cache_seconds=config.EXCHANGE_RATE_CACHE_SECONDS,
    timeout=config.EXCHANGE_RATE_TIMEOUT,
)


def create_app() -> Flask:
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.SECRET_KEY
    app.json.sort_keys = False

    CORS(app, resources={r"/api/*": {"origins": config.CORS_ORIGINS}})

    register_routes(app)
    return app


def register_routes(app: Flask) -> None:
    @app.get("/api")
    def health_check():
        return jsonify({"status": "healthy"})

    @app.get("/api/rates")
    def get_rates():
        base = normalize_currency(request.args.get("base"), config.BASE_CURRENCY)
        return jsonify({"base": base, "rates": {code: float(rate) for code, rate in _load_rates(base).items()}})

    @app.get("/api/groups")
    def list_groups():
        member = (request.args.get("member") or "").strip() or None
        return jsonify([_group_json(group) for group in store.list_groups(member)])

    @app.post("/api/groups")
    def create_group():
        try:
            payload = _json_body()
            name = _text(payload, "name")
            created_by = _text(payload, "created_by")
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        if not name:
            return jsonify({"error": "missing_group_name"}), 400
        if not created_by:
            return jsonify({"error": "missing_fields"}), 400

        try:
            others = _normalize_handles(payload.get("members") or [])
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        members = [created_by] + [member for member in others if member != created_by]
        if len(members) < 2:
            return jsonify({"error": "missing_members"}), 400

        group = store.create_group(name, created_by, members)
        logger.info("Created group %s with %d members", group.id, len(members))
        return jsonify(_group_json(group)), 201

    @app.get("/api/groups/<int:group_id>")
    def get_group(group_id: int):
        group = store.get_group(group_id)
        if not group:
            return jsonify({"error": "group_not_found"}), 404
        return jsonify(_group_json(group))

    @app.post("/api/groups/<int:group_id>/members")
    def add_member(group_id: int):
        if not store.get_group(group_id):
            return jsonify({"error": "group_not_found"}), 404

        try:
            member = _text(_json_body(), "member")
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
        if not member:
            return jsonify({"error": "missing_fields"}), 400

        if not store.add_member(group_id, member):
            return jsonify({"error": "already_member"}), 409
        return jsonify({"status": "added", "member": member}), 201

    @app.get("/api/groups/<int:group_id>/expenses")
    def get_group_expenses(group_id: int):
        if not store.get_group(group_id):
            return jsonify({"error": "group_not_found"}), 404
        return jsonify([_expense_json(expense) for expense in store.list_expenses(group_id)])

    @app.post("/api/groups/<int:group_id>/expenses")
    def add_expense(group_id: int):
        group = store.get_group(group_id)
        if not group:
            return jsonify({"error": "group_not_found"}), 404

        try:
            expense = _build_expense(_json_body(), group_id, group.members)
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400

        expense_id = store.add_expense(expense)
        logger.info("Added %s expense %s to group %s", expense.split_policy.value, expense_id, group_id)
        return jsonify({"id": expense_id, "splits": _splits_json(expense)}), 201

    @app.delete("/api/groups/<int:group_id>/expenses/<int:expense_id>")
    def delete_expense(group_id: int, expense_id: int):
        if not store.delete_expense(group_id, expense_id):
            return jsonify({"error": "expense_not_found"}), 404
        return jsonify({"status": "deleted"}), 200

    @app.get("/api/groups/<int:group_id>/payments")
    def get_group_payments(group_id: int):
        if not store.get_group(group_id):
            return jsonify({"error": "group_not_found"}), 404
        return jsonify([_payment_json(payment) for payment in store.list_payments(group_id)])

    @app.post("/api/groups/<int:group_id>/payments")
    def record_payment(group_id: int):
        group = store.get_group(group_id)
        if not group:
            return jsonify({"error": "group_not_found"}), 404

        try:
            payload = _json_body()
            from_user = _text(payload, "from_user")
            to_user = _text(payload, "to_user")
            currency = _currency_code(payload.get("currency"))
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
        amount = payload.get("amount")

        if not from_user or not to_user or amount is None:
            return jsonify({"error": "missing_fields"}), 400
        if from_user not in group.members or to_user not in group.members:
            return jsonify({"error": "user_not_in_group"}), 400
        if from_user == to_user:
            return jsonify({"error": "self_payment"}), 400

        try:
            amount_decimal = round_money(amount)
        except (ValueError, InvalidOperation):
            return jsonify({"error": "invalid_amount"}), 400
        if not amount_decimal.is_finite() or amount_decimal <= 0:
            return jsonify({"error": "invalid_amount"}), 400

        payment = Payment(
            id=None,
            group_id=group_id,
            from_user=from_user,
            to_user=to_user,
            amount=amount_decimal,
            currency=currency,
            payment_date=datetime.now(),
        )
        payment_id = store.add_payment(payment)
        logger.info("Recorded payment %s in group %s", payment_id, group_id)
        return jsonify({"id": payment_id, "amount": to_float(payment.amount), "currency": payment.currency}), 201

    @app.get("/api/groups/<int:group_id>/balances")
    def get_group_balances(group_id: int):
        group = store.get_group(group_id)
        if not group:
            return jsonify({"error": "group_not_found"}), 404

        base = _requested_currency()
        rates = _load_rates(base)
        expenses = store.list_expenses(group_id)
        payments = store.list_payments(group_id)

        balances = compute_balances(group.members, expenses, payments, base, rates)
        settlements = plan_settlement(balances)

        return jsonify(
            {
                "currency": base,
                "balances": [
                    {"member": member, "net_balance": to_float(balance)}
                    for member, balance in balances.items()
                ],
                "settlements": [
                    {"from_user": transfer.from_user, "to_user": transfer.to_user, "amount": to_float(transfer.amount)}
                    for transfer in settlements
                ],
                "settled": all(is_zero(balance) for balance in balances.values()),
            }
        )

    @app.get("/api/groups/<int:group_id>/analytics")
    def get_group_analytics(group_id: int):
        group = store.get_group(group_id)
        if not group:
            return jsonify({"error": "group_not_found"}), 404

        member = (request.args.get("member") or "").strip()
        if not member:
            return jsonify({"error": "missing_fields"}), 400

        base = _requested_currency()
        summary = group_summary(
            store.list_expenses(group_id),
            store.list_payments(group_id),
            member,
            base,
            _load_rates(base),
            date.today(),
        )
        return jsonify(_plain(summary))

    @app.get("/api/members/<member>/ledger")
    def get_member_ledger(member: str):
        base = _requested_currency()
        groups, expenses, payments = _member_snapshot(member)
        friends: List[str] = []
        for group in groups:
            friends.extend(other for other in group.members if other != member and other not in friends)

        ledger = compute_member_ledger(member, friends, expenses, payments, base, _load_rates(base))
        return jsonify(
            {
                "currency": base,
                "balances": [
                    {"friend": friend, "amount": to_float(amount)}
                    for friend, amount in ledger.items()
                    if not is_zero(amount)
                ],
            }
        )

    @app.get("/api/members/<member>/dashboard")
    def get_member_dashboard(member: str):
        base = _requested_currency()
        period = request.args.get("period", "month")
        _, expenses, payments = _member_snapshot(member)
        try:
            dashboard = member_dashboard(member, expenses, payments, base, _load_rates(base), date.today(), period)
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
        return jsonify(_plain(dashboard))


def _requested_currency() -> str:
    return normalize_currency(request.args.get("currency"), config.BASE_CURRENCY)


def _json_body() -> Dict[str, Any]:
    payload = request.get_json(force=True)
    if payload is None:
        return {}
    if not isinstance(payload, dict):
        raise ValueError("invalid_payload")
    return payload


def _text(payload: Mapping[str, Any], key: str) -> str:
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError("invalid_payload")
    return value.strip()


def _currency_code(value: Any) -> str:
    if value is not None and not isinstance(value, str):
        raise ValueError("invalid_currency")
    code = normalize_currency(value, config.BASE_CURRENCY)
    if not is_currency_code(code):
        raise ValueError("invalid_currency")
    return code


def _load_rates(base: str) -> Dict[str, Any]:
    try:
        return rate_client.get_rates(base)
    except (RateFetchError, requests.RequestException) as exc:
        # Amounts are then shown unconverted.
        logger.warning("Exchange rates unavailable for %s: %s", base, exc)
        return {base: 1}


def _member_snapshot(member: str):
    groups = store.list_groups(member)
    expenses: List[Expense] = []
    payments: List[Payment] = []
    for group in groups:
        expenses.extend(store.list_expenses(group.id))
        payments.extend(store.list_payments(group.id))
    return groups, expenses, payments


def _normalize_handles(values: Any) -> List[str]:
    if not isinstance(values, list):
        raise ValueError("invalid_members")
    handles: List[str] = []
    for value in values:
        if not isinstance(value, str) or not value.strip():
            raise ValueError("invalid_members")
        handle = value.strip()
        if handle not in handles:
            handles.append(handle)
    return handles


def _normalize_policy_input(payload: Any) -> Dict[str, Any]:
    # Accepts {"member": value} or [{"member": ..., "value": ...}]
    if payload is None:
        return {}
    if isinstance(payload, Mapping):
        return {str(member).strip(): value for member, value in payload.items()}
    if isinstance(payload, list):
        values: Dict[str, Any] = {}
        for item in payload:
            try:
                member = str(item["member"]).strip()
                value = item.get("value", item.get("amount", item.get("percent")))
            except (KeyError, TypeError, AttributeError):
                raise ValueError("invalid_share_payload") from None
            if member in values:
                raise ValueError("duplicate_share_entry")
            values[member] = value
        return values
    raise ValueError("invalid_share_payload")


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        raise ValueError("invalid_created_at") from None


def _build_expense(payload: Mapping[str, Any], group_id: int, members: List[str]) -> Expense:
    description = _text(payload, "description")
    paid_by = _text(payload, "paid_by")
    amount = payload.get("amount")

    if not description or not paid_by or amount is None:
        raise ValueError("missing_fields")
    if isinstance(amount, bool) or not isinstance(amount, (int, float, str)):
        raise ValueError("invalid_amount")
    if paid_by not in members:
        raise ValueError("payer_not_in_group")

    participants = _normalize_handles(payload.get("participants") or list(members))
    if not all(participant in members for participant in participants):
        raise ValueError("invalid_split_members")

    currency = _currency_code(payload.get("currency"))
    policy = SplitPolicy.parse(payload.get("split_type"))
    policy_input = _normalize_policy_input(payload.get("shares"))
    values = validate_split_input(amount, policy, participants, policy_input)
    splits = compute_splits(amount, policy, participants, paid_by, values)

    return Expense(
        id=None,
        group_id=group_id,
        description=description,
        amount=amount,
        currency=currency,
        paid_by=paid_by,
        participants=tuple(participants),
        split_policy=policy,
        splits=tuple(splits),
        category=_text(payload, "category") or None,
        created_at=_parse_timestamp(payload.get("created_at")) or datetime.now(),
    )


def _group_json(group) -> Dict[str, Any]:
    return {
        "id": group.id,
        "name": group.name,
        "created_by": group.created_by,
        "members": list(group.members),
        "created_at": group.created_at.isoformat() if group.created_at else None,
    }


def _splits_json(expense: Expense) -> List[Dict[str, Any]]:
    return [{"member": split.member, "amount_owed": to_float(split.amount_owed)} for split in expense.splits]


def _expense_json(expense: Expense) -> Dict[str, Any]:
    return {
        "id": expense.id,
        "description": expense.description,
        "amount": to_float(expense.amount),
        "currency": expense.currency,
        "paid_by": expense.paid_by,
        "split_type": expense.split_policy.value,
        "category": expense.category,
        "created_at": expense.created_at.isoformat() if expense.created_at else None,
        "splits": _splits_json(expense),
    }


def _payment_json(payment: Payment) -> Dict[str, Any]:
    return {
        "id": payment.id,
        "from_user": payment.from_user,
        "to_user": payment.to_user,
        "amount": to_float(payment.amount),
        "currency": payment.currency,
        "payment_date": payment.payment_date.isoformat() if payment.payment_date else None,
    }


def _plain(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    if isinstance(value, tuple):
        return [_plain(item) for item in value]
    if isinstance(value, Decimal):
        return to_float(value)
    return value


app = create_app()


if __name__ == "__main__":
    app.run(debug=True)
