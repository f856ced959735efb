from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from perrino.core.errors import (
    EvidenceUploadFailed,
    IntegrityFault,
    InvalidQuantity,
    InvalidTransition,
    LedgerUnavailable,
    MissingObservation,
    OrderNotFound,
    OrderTerminal,
    QuantityExceeded,
)
from perrino.core.status import OrderStatus
from perrino.models.order import Order
from perrino.services.order_aggregate import derive_status
from perrino.services.order_service import get_order_aggregate, load_history
from perrino.services.status_engine import transition_status
from perrino.services.evidence_store import EvidenceUpload
from perrino.tests.conftest import FakeEvidenceStore


def _ready_for_pickup(db, order, actor):
    transition_status(db, order.id, OrderStatus.IN_PRODUCTION, "En taller", actor)
    transition_status(db, order.id, OrderStatus.READY_FOR_PICKUP, "Listo", actor)


def test_new_order_starts_received_with_history(db, make_order):
    order = make_order()
    history = load_history(db, order.id)
    assert order.order_number == "ORD-000001"
    assert order.status == OrderStatus.RECEIVED.value
    assert len(history) == 1
    assert history[0].observations == "Pedido recibido"


def test_partial_deliveries_accumulate_until_quantity(db, make_order, actor):
    order = make_order(quantity=50)
    _ready_for_pickup(db, order, actor)

    result = transition_status(
        db, order.id, OrderStatus.PARTIALLY_DELIVERED, "Primera entrega", actor, quantity_delivered=30
    )
    assert result.total_delivered == 30
    agg = get_order_aggregate(db, order.id)
    assert agg.total_delivered == 30
    assert agg.remaining_to_deliver == 20

    with pytest.raises(QuantityExceeded):
        transition_status(
            db, order.id, OrderStatus.PARTIALLY_DELIVERED, "Segunda entrega", actor, quantity_delivered=25
        )

    result = transition_status(
        db, order.id, OrderStatus.PARTIALLY_DELIVERED, "Segunda entrega", actor, quantity_delivered=20
    )
    assert result.total_delivered == 50
    agg = get_order_aggregate(db, order.id)
    assert agg.remaining_to_deliver == 0
    assert agg.partial_delivery_count == 2


def test_skip_ahead_received_to_delivered_is_accepted(db, make_order, actor):
    order = make_order(quantity=10)
    result = transition_status(db, order.id, OrderStatus.DELIVERED, "Entregado en mostrador", actor)
    assert result.status == OrderStatus.DELIVERED
    assert result.total_delivered == 10


def test_skip_ahead_rejected_when_stepwise(db, make_order, actor):
    order = make_order()
    with pytest.raises(InvalidTransition):
        transition_status(
            db, order.id, OrderStatus.DELIVERED, "Entregado", actor, allow_skip_ahead=False
        )
    db.refresh(order)
    assert order.status == OrderStatus.RECEIVED.value
    assert len(load_history(db, order.id)) == 1


@pytest.mark.parametrize("target", list(OrderStatus))
def test_cancelled_order_rejects_every_target(db, make_order, actor, target):
    order = make_order()
    transition_status(db, order.id, OrderStatus.CANCELLED, "Cliente canceló", actor)
    with pytest.raises(OrderTerminal):
        transition_status(db, order.id, target, "Intento", actor, quantity_delivered=1 if target == OrderStatus.PARTIALLY_DELIVERED else None)


def test_delivered_order_is_terminal(db, make_order, actor):
    order = make_order()
    transition_status(db, order.id, OrderStatus.DELIVERED, "Entregado", actor)
    with pytest.raises(OrderTerminal):
        transition_status(db, order.id, OrderStatus.CANCELLED, "Tarde", actor)


def test_backward_transition_is_rejected(db, make_order, actor):
    order = make_order()
    _ready_for_pickup(db, order, actor)
    with pytest.raises(InvalidTransition):
        transition_status(db, order.id, OrderStatus.IN_PRODUCTION, "Volver", actor)


@pytest.mark.parametrize("observation", [None, "", "   "])
def test_observation_is_required(db, make_order, actor, observation):
    order = make_order()
    with pytest.raises(MissingObservation):
        transition_status(db, order.id, OrderStatus.IN_PRODUCTION, observation, actor)
    assert len(load_history(db, order.id)) == 1


def test_partial_delivery_requires_positive_quantity(db, make_order, actor):
    order = make_order()
    _ready_for_pickup(db, order, actor)
    for bad in (None, 0, -3):
        with pytest.raises(InvalidQuantity):
            transition_status(
                db, order.id, OrderStatus.PARTIALLY_DELIVERED, "Entrega", actor, quantity_delivered=bad
            )


def test_quantity_only_applies_to_partial_delivery(db, make_order, actor):
    order = make_order()
    with pytest.raises(InvalidQuantity):
        transition_status(db, order.id, OrderStatus.IN_PRODUCTION, "En taller", actor, quantity_delivered=5)


def test_unknown_order(db, actor):
    with pytest.raises(OrderNotFound):
        transition_status(db, 999, OrderStatus.IN_PRODUCTION, "x", actor)


def test_order_addressed_by_number(db, make_order, actor):
    order = make_order()
    result = transition_status(db, order.order_number, OrderStatus.IN_PRODUCTION, "En taller", actor)
    assert result.order_id == order.id


def test_status_always_matches_latest_history(db, make_order, actor):
    order = make_order(quantity=5)
    steps = [
        (OrderStatus.IN_PRODUCTION, None),
        (OrderStatus.READY_FOR_PICKUP, None),
        (OrderStatus.PARTIALLY_DELIVERED, 2),
        (OrderStatus.PARTIALLY_DELIVERED, 2),
        (OrderStatus.DELIVERED, None),
    ]
    for target, qty in steps:
        transition_status(db, order.id, target, "Paso", actor, quantity_delivered=qty)
        db.refresh(order)
        assert derive_status(load_history(db, order.id)).value == order.status


def test_history_timestamps_never_go_backwards(db, make_order, actor):
    created = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
    order = make_order(now=created)
    transition_status(
        db, order.id, OrderStatus.IN_PRODUCTION, "Reloj atrasado", actor, now=created - timedelta(hours=1)
    )
    history = load_history(db, order.id)
    assert history[-1].status == OrderStatus.IN_PRODUCTION.value
    assert derive_status(history) == OrderStatus.IN_PRODUCTION


def test_photos_are_uploaded_and_linked(db, make_order, actor):
    store = FakeEvidenceStore()
    order = make_order()
    transition_status(
        db, order.id, OrderStatus.IN_PRODUCTION, "Con fotos", actor,
        photos=[EvidenceUpload(data=b"img", content_type="image/jpeg", filename="a.jpg")],
        photo_urls=["https://cdn.test/previa.jpg"],
        evidence_store=store,
    )
    entry = load_history(db, order.id)[-1]
    assert entry.photo_urls[0] == "https://cdn.test/previa.jpg"
    assert entry.photo_urls[1].startswith(f"https://evidence.test/status-photos/orders/{order.id}/")


def test_failed_upload_writes_nothing(db, make_order, actor):
    order = make_order()
    with pytest.raises(EvidenceUploadFailed):
        transition_status(
            db, order.id, OrderStatus.IN_PRODUCTION, "Con fotos", actor,
            photos=[EvidenceUpload(data=b"img", content_type="image/jpeg")],
            evidence_store=FakeEvidenceStore(fail=True),
        )
    db.refresh(order)
    assert order.status == OrderStatus.RECEIVED.value
    assert len(load_history(db, order.id)) == 1


def test_mismatched_status_is_flagged_not_repaired(db, make_order, actor):
    order = make_order()
    db.query(Order).filter(Order.id == order.id).update({"status": OrderStatus.READY_FOR_PICKUP.value})
    db.commit()

    with pytest.raises(IntegrityFault):
        transition_status(db, order.id, OrderStatus.DELIVERED, "Entrega", actor)

    db.refresh(order)
    assert order.needs_reconciliation is True
    assert order.status == OrderStatus.READY_FOR_PICKUP.value
    assert len(load_history(db, order.id)) == 1


def test_failed_commit_leaves_status_and_history_untouched(db, make_order, actor, monkeypatch):
    order = make_order(quantity=10)
    store = FakeEvidenceStore()

    def broken_commit():
        raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

    monkeypatch.setattr(db, "commit", broken_commit)
    with pytest.raises(LedgerUnavailable) as exc:
        transition_status(
            db, order.id, OrderStatus.PARTIALLY_DELIVERED, "Primer lote", actor,
            quantity_delivered=4,
            photos=[EvidenceUpload(data=b"img", content_type="image/jpeg")],
            evidence_store=store,
        )
    assert exc.value.retryable
    monkeypatch.undo()

    db.refresh(order)
    assert order.status == OrderStatus.RECEIVED.value
    assert len(load_history(db, order.id)) == 1
    assert get_order_aggregate(db, order.id).total_delivered == 0

    result = transition_status(
        db, order.id, OrderStatus.PARTIALLY_DELIVERED, "Primer lote", actor, quantity_delivered=4,
    )
    assert result.total_delivered == 4
    assert len(load_history(db, order.id)) == 2
