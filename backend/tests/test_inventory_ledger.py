import pytest
from sqlalchemy import update
from aftersales.errors import ForbiddenError, NotFoundError, ValidationError
from aftersales.models.spare_part import SparePart, RequestPart, SparePartHistory
from aftersales.services.inventory import InventoryLedger
from tests.test_utils_seed import seed_staff, seed_request, seed_part, actor_for, fetch, count_rows, all_rows


@pytest.fixture()
def staff(session_factory):
    return seed_staff(session_factory)


@pytest.fixture()
def ledger(clock):
    return InventoryLedger(clock)


@pytest.fixture()
def keeper(session_factory, staff):
    return actor_for(session_factory, staff['warehouse'])


@pytest.fixture()
def tech(session_factory, staff):
    return actor_for(session_factory, staff['tech1'])


@pytest.fixture()
def requests(session_factory, staff):
    lg = staff['dept:LG Maintenance']
    return [seed_request(session_factory, lg, staff['lg_manager'], status='IN_REPAIR') for _ in range(2)]


def _stock(factory, part_id):
    return fetch(factory, SparePart, part_id).present_pieces


def _history(factory, part_id):
    return all_rows(factory, SparePartHistory, spare_part_id=part_id)


def test_reserve_release_scenario(uow, ledger, session_factory, tech, requests):
    r1, r2 = requests
    part_id = seed_part(session_factory, present_pieces=10, unit_price=12.5)

    with uow() as u:
        rp = ledger.reserve(u, part_id, r1, 4, tech)
    assert _stock(session_factory, part_id) == 6
    reservations = all_rows(session_factory, RequestPart, spare_part_id=part_id)
    assert [(r.request_id, r.quantity_used, r.unit_price, r.total_cost) for r in reservations] == [(r1, 4, 12.5, 50.0)]
    rows = _history(session_factory, part_id)
    assert [(h.change_type, h.quantity_change, h.request_id) for h in rows] == [('USED_IN_REQUEST', -4, r1)]

    with pytest.raises(ValidationError) as exc:
        with uow() as u:
            ledger.reserve(u, part_id, r2, 7, tech)
    assert 'Insufficient stock' in exc.value.description
    assert _stock(session_factory, part_id) == 6
    assert count_rows(session_factory, RequestPart, spare_part_id=part_id) == 1
    assert len(_history(session_factory, part_id)) == 1

    with uow() as u:
        restored = ledger.release(u, rp.id, tech)
    assert restored == 4
    assert _stock(session_factory, part_id) == 10
    assert count_rows(session_factory, RequestPart, spare_part_id=part_id) == 0
    last = _history(session_factory, part_id)[-1]
    assert (last.change_type, last.quantity_change, last.old_value, last.new_value) == ('QUANTITY_CHANGED', 4, '6', '10')


@pytest.mark.parametrize('quantity', [0, -3, 'two', 1.5, True, None])
def test_reserve_rejects_non_positive_integer_quantity(uow, ledger, session_factory, tech, requests, quantity):
    part_id = seed_part(session_factory, present_pieces=10)
    with pytest.raises(ValidationError):
        with uow() as u:
            ledger.reserve(u, part_id, requests[0], quantity, tech)
    assert _stock(session_factory, part_id) == 10


def test_reserve_missing_request_or_part(uow, ledger, session_factory, tech, requests):
    part_id = seed_part(session_factory, present_pieces=10)
    with pytest.raises(NotFoundError):
        with uow() as u:
            ledger.reserve(u, part_id, 9999, 1, tech)
    with pytest.raises(NotFoundError):
        with uow() as u:
            ledger.reserve(u, 9999, requests[0], 1, tech)


def test_reserve_exactly_all_stock(uow, ledger, session_factory, tech, requests):
    part_id = seed_part(session_factory, present_pieces=3)
    with uow() as u:
        ledger.reserve(u, part_id, requests[0], 3, tech)
    assert _stock(session_factory, part_id) == 0


def test_adjust_moves_only_the_difference_at_snapshot_price(uow, ledger, session_factory, tech, requests):
    part_id = seed_part(session_factory, present_pieces=10, unit_price=10.0)
    with uow() as u:
        rp = ledger.reserve(u, part_id, requests[0], 4, tech)
    with session_factory() as s:
        s.execute(update(SparePart).where(SparePart.id == part_id).values(unit_price=99.0))
        s.commit()

    with uow() as u:
        ledger.adjust(u, rp.id, 6, tech)
    adjusted = fetch(session_factory, RequestPart, rp.id)
    assert (adjusted.quantity_used, adjusted.unit_price, adjusted.total_cost) == (6, 10.0, 60.0)
    assert _stock(session_factory, part_id) == 4

    with uow() as u:
        ledger.adjust(u, rp.id, 2, tech)
    assert _stock(session_factory, part_id) == 8
    assert [h.quantity_change for h in _history(session_factory, part_id)] == [-4, -2, 4]


def test_adjust_to_same_quantity_is_a_no_op(uow, ledger, session_factory, tech, requests):
    part_id = seed_part(session_factory, present_pieces=10)
    with uow() as u:
        rp = ledger.reserve(u, part_id, requests[0], 4, tech)
    with uow() as u:
        ledger.adjust(u, rp.id, 4, tech)
    assert _stock(session_factory, part_id) == 6
    assert len(_history(session_factory, part_id)) == 1


def test_adjust_beyond_stock_fails_without_changes(uow, ledger, session_factory, tech, requests):
    part_id = seed_part(session_factory, present_pieces=5)
    with uow() as u:
        rp = ledger.reserve(u, part_id, requests[0], 4, tech)
    with pytest.raises(ValidationError):
        with uow() as u:
            ledger.adjust(u, rp.id, 6, tech)
    assert fetch(session_factory, RequestPart, rp.id).quantity_used == 4
    assert _stock(session_factory, part_id) == 1


def test_release_and_adjust_unknown_reservation(uow, ledger, tech):
    with pytest.raises(NotFoundError):
        with uow() as u:
            ledger.release(u, 12345, tech)
    with pytest.raises(NotFoundError):
        with uow() as u:
            ledger.adjust(u, 12345, 2, tech)


def test_failure_after_reserve_rolls_back_everything(uow, ledger, session_factory, tech, requests, sink):
    part_id = seed_part(session_factory, present_pieces=10)
    with pytest.raises(RuntimeError):
        with uow() as u:
            ledger.reserve(u, part_id, requests[0], 4, tech)
            raise RuntimeError('downstream failure')
    assert _stock(session_factory, part_id) == 10
    assert count_rows(session_factory, RequestPart) == 0
    assert _history(session_factory, part_id) == []
    assert sink.delivered == []


def test_stock_is_conserved_and_reconstructable_from_history(uow, ledger, session_factory, keeper, tech, requests):
    r1, r2 = requests
    with uow() as u:
        part_id = ledger.create_part(u, keeper, {'name': 'Drain pump', 'present_pieces': 10, 'unit_price': 7}).id
    with uow() as u:
        a = ledger.reserve(u, part_id, r1, 3, tech)
    with uow() as u:
        b = ledger.reserve(u, part_id, r2, 2, tech)
    with uow() as u:
        ledger.adjust(u, a.id, 5, tech)
    with uow() as u:
        ledger.release(u, b.id, tech)
    with uow() as u:
        ledger.adjust_stock(u, part_id, keeper, 4, 'Delivery from supplier')
    with uow() as u:
        ledger.adjust_stock(u, part_id, keeper, -1, 'Damaged in storage')
    with pytest.raises(ValidationError):
        with uow() as u:
            ledger.reserve(u, part_id, r2, 50, tech)

    present = _stock(session_factory, part_id)
    live = sum(r.quantity_used for r in all_rows(session_factory, RequestPart, spare_part_id=part_id))
    assert present >= 0
    assert present + live == 10 + 4 - 1
    assert sum(h.quantity_change or 0 for h in _history(session_factory, part_id)) == present


def test_create_part_numbers_daily_sequence(uow, ledger, session_factory, keeper):
    with uow() as u:
        first = ledger.create_part(u, keeper, {'name': 'Filter'})
    with uow() as u:
        second = ledger.create_part(u, keeper, {'name': 'Hose', 'present_pieces': 3, 'category': 'PLUMBING'})
    assert first.part_number == 'PART260314-001'
    assert second.part_number == 'PART260314-002'
    assert (first.present_pieces, first.min_quantity, first.currency, first.category) == (0, 5, 'SYP', 'GENERAL')
    created = _history(session_factory, second.id)
    assert [(h.change_type, h.quantity_change) for h in created] == [('CREATED', 3)]


def test_only_warehouse_keeper_maintains_parts(uow, ledger, session_factory, staff):
    part_id = seed_part(session_factory, present_pieces=5)
    manager = actor_for(session_factory, staff['admin'])
    with pytest.raises(ForbiddenError):
        with uow() as u:
            ledger.create_part(u, manager, {'name': 'X'})
    with pytest.raises(ForbiddenError):
        with uow() as u:
            ledger.update_part(u, part_id, manager, {'name': 'Y'})
    with pytest.raises(ForbiddenError):
        with uow() as u:
            ledger.adjust_stock(u, part_id, manager, 1, 'found one')
    with pytest.raises(ForbiddenError):
        with uow() as u:
            ledger.delete_part(u, part_id, manager)
    assert _stock(session_factory, part_id) == 5


def test_update_part_writes_row_per_field_plus_summary(uow, ledger, session_factory, keeper):
    part_id = seed_part(session_factory, name='Fan', present_pieces=5, unit_price=3.0)
    with uow() as u:
        part = ledger.update_part(u, part_id, keeper, {'name': 'Fan motor', 'present_pieces': 8, 'unit_price': 3.0, 'currency': 'USD'})
    assert (part.name, part.present_pieces, part.currency) == ('Fan motor', 8, 'USD')
    rows = _history(session_factory, part_id)
    assert [(h.change_type, h.field_changed) for h in rows] == [
        ('UPDATED', 'name'),
        ('QUANTITY_CHANGED', 'present_pieces'),
        ('UPDATED', 'currency'),
        ('UPDATED', None),
    ]
    assert rows[1].quantity_change == 3
    assert rows[-1].description == 'Updated fields: name, present_pieces, currency'


def test_update_part_without_changes_writes_nothing(uow, ledger, session_factory, keeper):
    part_id = seed_part(session_factory, name='Fan', present_pieces=5)
    with uow() as u:
        ledger.update_part(u, part_id, keeper, {'name': 'Fan', 'present_pieces': 5})
    assert _history(session_factory, part_id) == []


def test_update_part_validation(uow, ledger, session_factory, keeper):
    part_id = seed_part(session_factory, present_pieces=5)
    other_id = seed_part(session_factory, present_pieces=5)
    taken = fetch(session_factory, SparePart, other_id).part_number
    for changes in ({'present_pieces': -1}, {'part_number': taken}, {'unit_price': -2}, {'name': '  '}):
        with pytest.raises(ValidationError):
            with uow() as u:
                ledger.update_part(u, part_id, keeper, changes)
    assert _history(session_factory, part_id) == []


def test_adjust_stock_rules(uow, ledger, session_factory, keeper):
    part_id = seed_part(session_factory, present_pieces=2)
    for adjustment, reason in ((0, 'nothing'), (3, ''), (-3, 'lost'), ('x', 'typo'), (1.5, 'half')):
        with pytest.raises(ValidationError):
            with uow() as u:
                ledger.adjust_stock(u, part_id, keeper, adjustment, reason)
    with uow() as u:
        ledger.adjust_stock(u, part_id, keeper, -2, 'Sent back to vendor')
    assert _stock(session_factory, part_id) == 0
    (row,) = _history(session_factory, part_id)
    assert (row.quantity_change, row.description) == (-2, 'Manual adjustment: Sent back to vendor')


def test_delete_part_blocked_by_reservations_and_history_survives(uow, ledger, session_factory, keeper, tech, requests):
    part_id = seed_part(session_factory, present_pieces=5)
    with uow() as u:
        rp = ledger.reserve(u, part_id, requests[0], 1, tech)
    with pytest.raises(ValidationError):
        with uow() as u:
            ledger.delete_part(u, part_id, keeper)
    with uow() as u:
        ledger.release(u, rp.id, tech)
    with uow() as u:
        ledger.delete_part(u, part_id, keeper)
    assert fetch(session_factory, SparePart, part_id) is None
    assert [h.change_type for h in _history(session_factory, part_id)] == ['USED_IN_REQUEST', 'QUANTITY_CHANGED', 'DELETED']


def test_delete_missing_part(uow, ledger, keeper):
    with pytest.raises(NotFoundError):
        with uow() as u:
            ledger.delete_part(u, 777, keeper)
