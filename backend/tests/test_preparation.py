import pytest
from distribution import get_db
from distribution.errors import IncompletePreparation, InvalidState, NotFound
from distribution.models.order import Order
from distribution.models.preparation_item import PreparationItem
from distribution.services.orders import OrderGate
from distribution.services.preparation import PreparationTracker
from tests.test_utils_seed import create_order, fresh


def _confirmed(clock, **kw):
    order = create_order(**kw)
    return OrderGate(get_db(), clock).confirm(order.id)


def test_start_creates_one_item_per_line(clock):
    order = _confirmed(clock)
    tracker = PreparationTracker(get_db(), clock)
    items = tracker.start(order.id, prepared_by=7)
    assert [i.product_id for i in items] == [101, 102, 103]
    assert [i.product_name for i in items] == ['Milk 1L', 'Brown bread', 'Eggs x12']
    assert [i.quantity for i in items] == [2, 1, 1]
    assert not any(i.is_prepared for i in items)
    assert fresh(Order, order.id).status == 'preparing'


def test_start_is_idempotent(clock):
    order = _confirmed(clock)
    tracker = PreparationTracker(get_db(), clock)
    first = tracker.start(order.id)
    version = fresh(Order, order.id).version
    second = tracker.start(order.id)
    assert [i.id for i in first] == [i.id for i in second]
    assert get_db().query(PreparationItem).filter_by(order_id=order.id).count() == 3
    assert fresh(Order, order.id).version == version


def test_start_requires_confirmed(clock):
    order = create_order(status='pending')
    with pytest.raises(InvalidState):
        PreparationTracker(get_db(), clock).start(order.id)
    with pytest.raises(NotFound):
        PreparationTracker(get_db(), clock).start(987654)


def test_toggle_marks_and_unmarks(clock):
    order = _confirmed(clock)
    tracker = PreparationTracker(get_db(), clock)
    item = tracker.start(order.id)[0]
    clock.advance(minutes=2)
    item = tracker.toggle(item.id, True, notes='cold shelf', prepared_by=7)
    assert item.is_prepared is True
    assert item.prepared_at == clock.now()
    assert item.prepared_by == 7
    assert item.notes == 'cold shelf'
    item = tracker.toggle(item.id, False)
    assert item.is_prepared is False
    assert item.prepared_at is None
    assert item.notes == 'cold shelf'


def test_toggle_unknown_item_and_locked_checklist(clock):
    order = _confirmed(clock)
    tracker = PreparationTracker(get_db(), clock)
    items = tracker.start(order.id)
    with pytest.raises(NotFound):
        tracker.toggle(999999, True)
    for i in items:
        tracker.toggle(i.id, True)
    tracker.complete(order.id)
    with pytest.raises(InvalidState):
        tracker.toggle(items[0].id, False)


def test_complete_reports_remaining_items(clock):
    order = _confirmed(clock)
    tracker = PreparationTracker(get_db(), clock)
    items = tracker.start(order.id)
    tracker.toggle(items[0].id, True)
    tracker.toggle(items[2].id, True)
    with pytest.raises(IncompletePreparation) as exc:
        tracker.complete(order.id)
    assert exc.value.remaining_item_ids == [items[1].id]
    assert exc.value.code == 422
    assert fresh(Order, order.id).status == 'preparing'


def test_complete_when_all_prepared(clock):
    order = _confirmed(clock)
    tracker = PreparationTracker(get_db(), clock)
    for i in tracker.start(order.id):
        tracker.toggle(i.id, True)
    done = tracker.complete(order.id)
    assert done.status == 'ready'
    progress = tracker.progress(order.id)
    assert progress['total'] == 3 and progress['prepared'] == 3 and progress['remaining'] == 0


def test_zero_item_order_is_vacuously_complete(clock):
    order = _confirmed(clock, items=[])
    tracker = PreparationTracker(get_db(), clock)
    assert tracker.start(order.id) == []
    assert tracker.complete(order.id).status == 'ready'


def test_complete_requires_preparing(clock):
    order = _confirmed(clock)
    with pytest.raises(InvalidState):
        PreparationTracker(get_db(), clock).complete(order.id)
