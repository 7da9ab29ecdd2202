from decimal import Decimal

import pytest
from sqlalchemy.orm import Query

from app.core.errors import Forbidden, InvalidState, InvalidTransition, NotFound, ValidationError
from app.models.branch import Branch
from app.models.order import Order
from app.services import order_service


def _items():
    return [
        {"product_id": 1, "product_name": "Anillo", "quantity": 2, "unit_price": 10},
        {"product_id": 2, "product_name": "Cadena", "quantity": 1, "unit_price": 5},
    ]


def _create(db, customer):
    return order_service.create_order(db, customer.id, _items(), notes="Pasar por la tarde")


def test_create_order_snapshots_items_and_total(db, customer):
    order = _create(db, customer)

    assert order.folio == "ORD-000001"
    assert order.status == "UNDER_REVIEW"
    assert order.total == Decimal("25.00")
    assert [i.product_name for i in order.items] == ["Anillo", "Cadena"]
    assert all(i.is_available is None for i in order.items)

    second = _create(db, customer)
    assert second.folio == "ORD-000002"


def test_create_order_validation(db, customer):
    with pytest.raises(ValidationError):
        order_service.create_order(db, customer.id, [])
    with pytest.raises(ValidationError):
        order_service.create_order(db, customer.id, [{"product_name": "X", "quantity": 0, "unit_price": 1}])
    with pytest.raises(NotFound):
        order_service.create_order(db, customer.id, _items(), branch_id=999)


def test_create_order_rejects_inactive_branch(db, customer):
    branch = Branch(name="Cerrada", is_active=False)
    db.add(branch)
    db.commit()
    with pytest.raises(NotFound):
        order_service.create_order(db, customer.id, _items(), branch_id=branch.id)


def test_review_partial_availability(db, customer, notifier):
    order = _create(db, customer)
    first, second = order.items

    order = order_service.review_availability(
        db,
        order.id,
        [
            {"item_id": first.id, "is_available": True, "confirmed_quantity": 1},
            {"item_id": second.id, "is_available": False},
        ],
        notifier,
    )

    assert order.status == "PARTIALLY_AVAILABLE"
    assert order.total == Decimal("10.00")
    assert (first.confirmed_quantity, first.subtotal) == (1, Decimal("10.00"))
    assert (second.confirmed_quantity, second.subtotal, second.is_available) == (0, Decimal("0.00"), False)
    assert notifier.calls == [(customer.id, "order", order.id, "PARTIALLY_AVAILABLE", "UNDER_REVIEW")]


def test_review_everything_available_goes_to_preparation(db, customer, notifier):
    order = _create(db, customer)
    decisions = [
        {"item_id": item.id, "is_available": True, "confirmed_quantity": 50}
        for item in order.items
    ]

    order = order_service.review_availability(db, order.id, decisions, notifier)

    assert order.status == "IN_PREPARATION"
    assert order.total == Decimal("25.00")
    # la cantidad confirmada nunca supera la pedida
    assert [i.confirmed_quantity for i in order.items] == [2, 1]
    assert len(notifier.calls) == 1


def test_review_requires_every_item_exactly_once(db, customer, notifier):
    order = _create(db, customer)
    first, second = order.items

    with pytest.raises(ValidationError):
        order_service.review_availability(db, order.id, [{"item_id": first.id, "is_available": True}], notifier)
    with pytest.raises(ValidationError):
        order_service.review_availability(
            db,
            order.id,
            [
                {"item_id": first.id, "is_available": True},
                {"item_id": first.id, "is_available": False},
                {"item_id": second.id, "is_available": True},
            ],
            notifier,
        )
    with pytest.raises(ValidationError):
        order_service.review_availability(db, order.id, [], notifier)

    db.refresh(order)
    assert order.status == "UNDER_REVIEW"
    assert order.total == Decimal("25.00")
    assert notifier.calls == []


def test_review_only_under_review(db, customer, notifier):
    order = _create(db, customer)
    order_service.cancel_order(db, order.id, customer.id, is_admin=False)
    with pytest.raises(InvalidState):
        order_service.review_availability(
            db, order.id, [{"item_id": i.id, "is_available": True} for i in order.items], notifier
        )


def test_full_lifecycle(db, customer, notifier):
    order = _create(db, customer)
    order = order_service.review_availability(
        db,
        order.id,
        [{"item_id": i.id, "is_available": i.product_name == "Anillo"} for i in order.items],
        notifier,
    )
    order = order_service.confirm_by_customer(db, order.id, customer.id, notifier)
    assert order.status == "IN_PREPARATION"
    assert order.confirmed_at is not None

    order = order_service.mark_as_ready(db, order.id, notifier)
    assert order.status == "READY_FOR_PICKUP"
    assert order.ready_at is not None

    order = order_service.complete_order(db, order.id, notifier)
    assert order.status == "COMPLETED"
    assert order.completed_at is not None

    assert [c[3] for c in notifier.calls] == [
        "PARTIALLY_AVAILABLE", "IN_PREPARATION", "READY_FOR_PICKUP", "COMPLETED",
    ]

    with pytest.raises(InvalidTransition):
        order_service.cancel_order(db, order.id, customer.id, is_admin=True)


def test_confirm_by_customer_rules(db, customer, other_customer, notifier):
    order = _create(db, customer)
    with pytest.raises(InvalidTransition):
        order_service.confirm_by_customer(db, order.id, customer.id, notifier)

    order_service.review_availability(
        db, order.id, [{"item_id": i.id, "is_available": False} for i in order.items], notifier
    )
    with pytest.raises(Forbidden):
        order_service.confirm_by_customer(db, order.id, other_customer.id, notifier)


def test_mark_ready_requires_preparation(db, customer, notifier):
    order = _create(db, customer)
    with pytest.raises(InvalidTransition):
        order_service.mark_as_ready(db, order.id, notifier)
    with pytest.raises(InvalidTransition):
        order_service.complete_order(db, order.id, notifier)
    assert notifier.calls == []


def test_cancel_permissions(db, customer, other_customer, notifier):
    order = _create(db, customer)
    with pytest.raises(Forbidden):
        order_service.cancel_order(db, order.id, other_customer.id, is_admin=False)

    order = order_service.cancel_order(db, order.id, customer.id, is_admin=False, notifier=notifier)
    assert order.status == "CANCELLED"
    assert notifier.calls[-1][3:] == ("CANCELLED", "UNDER_REVIEW")


def test_manual_status_override(db, customer, notifier):
    order = _create(db, customer)
    with pytest.raises(ValidationError):
        order_service.update_order_status(db, order.id, "SHIPPED", notifier)

    same = order_service.update_order_status(db, order.id, "UNDER_REVIEW", notifier)
    assert same.status == "UNDER_REVIEW"
    assert notifier.calls == []

    order = order_service.update_order_status(db, order.id, "READY_FOR_PICKUP", notifier)
    assert order.status == "READY_FOR_PICKUP"
    assert len(notifier.calls) == 1


def test_notifier_failure_does_not_undo_transition(db, customer, failing_notifier):
    order = _create(db, customer)
    order = order_service.review_availability(
        db, order.id, [{"item_id": i.id, "is_available": True} for i in order.items], failing_notifier
    )
    db.refresh(order)
    assert order.status == "IN_PREPARATION"


def test_list_and_counts(db, customer, other_customer):
    mine = _create(db, customer)
    theirs = order_service.create_order(db, other_customer.id, _items())
    order_service.cancel_order(db, theirs.id, other_customer.id, is_admin=False)

    assert [o.id for o in order_service.list_orders(db, customer.id, is_admin=False)] == [mine.id]
    assert len(order_service.list_orders(db, customer.id, is_admin=True)) == 2
    assert [o.id for o in order_service.list_orders(db, customer.id, True, status="CANCELLED")] == [theirs.id]
    with pytest.raises(ValidationError):
        order_service.list_orders(db, customer.id, True, status="BOGUS")

    counts = order_service.count_orders_by_status(db)
    assert counts["UNDER_REVIEW"] == 1
    assert counts["CANCELLED"] == 1
    assert counts["total"] == 2

    with pytest.raises(Forbidden):
        order_service.get_order_for_user(db, theirs.id, customer.id, is_admin=False)


def test_second_review_is_rejected(db, customer, notifier):
    order = _create(db, customer)
    decisions = [{"item_id": i.id, "is_available": True} for i in order.items]
    order_service.review_availability(db, order.id, decisions, notifier)

    with pytest.raises(InvalidState):
        order_service.review_availability(db, order.id, decisions, notifier)
    assert len(notifier.calls) == 1


def test_transitions_lock_the_order_row(db, customer, notifier, monkeypatch):
    locked = []
    original = Query.with_for_update

    def spy(query, *args, **kwargs):
        locked.append(query.column_descriptions[0]["entity"])
        return original(query, *args, **kwargs)

    monkeypatch.setattr(Query, "with_for_update", spy)

    order = _create(db, customer)
    locked.clear()
    order_service.review_availability(
        db, order.id, [{"item_id": i.id, "is_available": True} for i in order.items], notifier
    )
    order_service.mark_as_ready(db, order.id, notifier)
    order_service.complete_order(db, order.id, notifier)

    assert locked == [Order, Order, Order]
