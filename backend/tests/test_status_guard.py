import pytest
from aftersales.errors import ForbiddenError, NotFoundError, ValidationError
from aftersales.models.service_request import ServiceRequest, RequestActivity
from aftersales.services.status_guard import StatusTransitionGuard
from tests.test_utils_seed import seed_staff, seed_request, seed_user, actor_for, fetch, count_rows, all_rows


def _naive(dt):
    return dt.replace(tzinfo=None) if dt is not None else None


@pytest.fixture()
def staff(session_factory):
    return seed_staff(session_factory)


@pytest.fixture()
def guard(clock):
    return StatusTransitionGuard(clock)


@pytest.fixture()
def lg(staff):
    return staff['dept:LG Maintenance']


def _change(uow, guard, factory, rid, user_id, target, comment=None):
    with uow() as u:
        return guard.change_status(u, rid, actor_for(factory, user_id), target, comment)


def test_technician_confirms_receipt_without_touching_assigned_at(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='NEW', assigned_technician_id=staff['tech1'])
    _change(uow, guard, session_factory, rid, staff['tech1'], 'ASSIGNED')
    req = fetch(session_factory, ServiceRequest, rid)
    assert req.status == 'ASSIGNED'
    assert req.assigned_at is None
    rows = all_rows(session_factory, RequestActivity, request_id=rid)
    assert [r.description for r in rows] == ['Status changed from NEW to ASSIGNED']
    assert (rows[0].old_value, rows[0].new_value) == ('NEW', 'ASSIGNED')


def test_technician_cannot_skip_to_completed(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='ASSIGNED', assigned_technician_id=staff['tech1'])
    with pytest.raises(ForbiddenError):
        _change(uow, guard, session_factory, rid, staff['tech1'], 'COMPLETED')
    assert fetch(session_factory, ServiceRequest, rid).status == 'ASSIGNED'
    assert count_rows(session_factory, RequestActivity, request_id=rid) == 0


@pytest.mark.parametrize('current,target', [
    ('NEW', 'UNDER_INSPECTION'),
    ('UNDER_INSPECTION', 'IN_REPAIR'),
    ('WAITING_PARTS', 'IN_REPAIR'),
    ('IN_REPAIR', 'ASSIGNED'),
    ('COMPLETED', 'IN_REPAIR'),
])
def test_technician_illegal_edges_leave_no_trace(uow, guard, session_factory, staff, lg, sink, current, target):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status=current, assigned_technician_id=staff['tech1'])
    with pytest.raises(ForbiddenError):
        _change(uow, guard, session_factory, rid, staff['tech1'], target)
    assert fetch(session_factory, ServiceRequest, rid).status == current
    assert count_rows(session_factory, RequestActivity, request_id=rid) == 0
    assert sink.delivered == []


def test_unrelated_technician_is_forbidden(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='NEW', assigned_technician_id=staff['tech1'])
    with pytest.raises(ForbiddenError):
        _change(uow, guard, session_factory, rid, staff['tech3'], 'ASSIGNED')
    assert count_rows(session_factory, RequestActivity, request_id=rid) == 0


def test_receiving_technician_may_progress(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['tech1'], status='NEW')
    req = _change(uow, guard, session_factory, rid, staff['tech1'], 'ASSIGNED')
    assert req.status == 'ASSIGNED'


def test_warehouse_keeper_cannot_change_status(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='ASSIGNED')
    with pytest.raises(ForbiddenError):
        _change(uow, guard, session_factory, rid, staff['warehouse'], 'IN_REPAIR')


def test_department_manager_limited_to_own_department(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='ASSIGNED')
    with pytest.raises(ForbiddenError):
        _change(uow, guard, session_factory, rid, staff['solar_manager'], 'IN_REPAIR')
    req = _change(uow, guard, session_factory, rid, staff['lg_manager'], 'IN_REPAIR')
    assert req.status == 'IN_REPAIR'


def test_manager_can_jump_between_working_states(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='NEW')
    for target in ('COMPLETED', 'WAITING_PARTS', 'ASSIGNED'):
        assert _change(uow, guard, session_factory, rid, staff['lg_supervisor'], target).status == target
    assert count_rows(session_factory, RequestActivity, request_id=rid) == 3


def test_new_is_never_a_target(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='ASSIGNED')
    with pytest.raises(ForbiddenError):
        _change(uow, guard, session_factory, rid, staff['admin'], 'NEW')


def test_unknown_status_is_a_validation_error(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='ASSIGNED')
    with pytest.raises(ValidationError):
        _change(uow, guard, session_factory, rid, staff['admin'], 'EXPLODED')
    assert count_rows(session_factory, RequestActivity, request_id=rid) == 0


def test_manager_may_repeat_current_status(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='IN_REPAIR', assigned_technician_id=staff['tech1'])
    req = _change(uow, guard, session_factory, rid, staff['lg_manager'], 'IN_REPAIR', 'parts arrived')
    assert req.status == 'IN_REPAIR'
    rows = all_rows(session_factory, RequestActivity, request_id=rid)
    assert [r.description for r in rows] == ['Status changed from IN_REPAIR to IN_REPAIR. Comment: parts arrived']


def test_repeated_completed_keeps_completed_at(uow, guard, session_factory, staff, lg, clock):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='IN_REPAIR', assigned_technician_id=staff['tech1'])
    first = clock()
    _change(uow, guard, session_factory, rid, staff['lg_manager'], 'COMPLETED')
    clock.advance(hours=5)
    _change(uow, guard, session_factory, rid, staff['lg_manager'], 'COMPLETED')
    assert _naive(fetch(session_factory, ServiceRequest, rid).completed_at) == _naive(first)
    rows = all_rows(session_factory, RequestActivity, request_id=rid)
    assert [r.description for r in rows] == [
        'Status changed from IN_REPAIR to COMPLETED',
        'Status changed from COMPLETED to COMPLETED',
    ]


def test_technician_cannot_repeat_current_status(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='IN_REPAIR', assigned_technician_id=staff['tech1'])
    with pytest.raises(ForbiddenError):
        _change(uow, guard, session_factory, rid, staff['tech1'], 'IN_REPAIR')
    assert count_rows(session_factory, RequestActivity, request_id=rid) == 0


def test_missing_request_is_not_found(uow, guard, session_factory, staff):
    with pytest.raises(NotFoundError):
        _change(uow, guard, session_factory, 9999, staff['admin'], 'IN_REPAIR')


def test_comment_is_appended_to_activity(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='ASSIGNED')
    _change(uow, guard, session_factory, rid, staff['lg_manager'], 'WAITING_PARTS', comment='Board on order')
    rows = all_rows(session_factory, RequestActivity, request_id=rid)
    assert rows[0].description == 'Status changed from ASSIGNED to WAITING_PARTS. Comment: Board on order'


def test_lifecycle_timestamps_are_written_once(uow, guard, session_factory, staff, lg, clock):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='ASSIGNED')
    first = clock()
    _change(uow, guard, session_factory, rid, staff['lg_manager'], 'UNDER_INSPECTION')
    _change(uow, guard, session_factory, rid, staff['lg_manager'], 'COMPLETED')
    clock.advance(hours=5)
    _change(uow, guard, session_factory, rid, staff['lg_manager'], 'UNDER_INSPECTION')
    _change(uow, guard, session_factory, rid, staff['lg_manager'], 'COMPLETED')
    req = fetch(session_factory, ServiceRequest, rid)
    assert _naive(req.started_at) == _naive(first)
    assert _naive(req.completed_at) == _naive(first)


def test_close_then_reassign_reopens(uow, guard, session_factory, staff, lg, clock):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='COMPLETED', assigned_technician_id=staff['tech1'])
    admin = actor_for(session_factory, staff['admin'])
    with uow() as u:
        req = guard.close_request(u, rid, admin, final_notes='Replaced pump', customer_satisfaction=5)
    assert req.status == 'CLOSED'
    closed = fetch(session_factory, ServiceRequest, rid)
    assert _naive(closed.closed_at) == _naive(clock())
    assert closed.final_notes == 'Replaced pump'
    assert closed.customer_satisfaction == 5
    with uow() as u:
        req = guard.assign_technician(u, rid, admin, staff['tech1'])
    assert fetch(session_factory, ServiceRequest, rid).status == 'NEW'
    descriptions = [a.description for a in all_rows(session_factory, RequestActivity, request_id=rid)]
    assert descriptions[0] == 'Request closed'
    assert descriptions[1].endswith('Status changed from CLOSED to NEW')


def test_only_top_tier_reopens_closed(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='CLOSED')
    with pytest.raises(ForbiddenError):
        _change(uow, guard, session_factory, rid, staff['lg_manager'], 'IN_REPAIR')
    with pytest.raises(ForbiddenError):
        with uow() as u:
            guard.assign_technician(u, rid, actor_for(session_factory, staff['lg_manager']), staff['tech1'])
    req = _change(uow, guard, session_factory, rid, staff['deputy'], 'IN_REPAIR')
    assert req.status == 'IN_REPAIR'
    rows = all_rows(session_factory, RequestActivity, request_id=rid)
    assert rows[0].description == 'Request reopened from CLOSED to IN_REPAIR'


def test_closed_target_goes_through_close_rules(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='IN_REPAIR', assigned_technician_id=staff['tech1'])
    with pytest.raises(ValidationError):
        _change(uow, guard, session_factory, rid, staff['lg_manager'], 'CLOSED')
    with pytest.raises(ForbiddenError):
        _change(uow, guard, session_factory, rid, staff['tech1'], 'CLOSED')
    _change(uow, guard, session_factory, rid, staff['tech1'], 'COMPLETED')
    req = _change(uow, guard, session_factory, rid, staff['lg_manager'], 'CLOSED', comment='All good')
    assert req.status == 'CLOSED'
    assert fetch(session_factory, ServiceRequest, rid).final_notes == 'All good'


def test_close_validates_satisfaction(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='COMPLETED')
    manager = actor_for(session_factory, staff['lg_manager'])
    for bad in (0, 6, 'great'):
        with pytest.raises(ValidationError):
            with uow() as u:
                guard.close_request(u, rid, manager, customer_satisfaction=bad)
    assert fetch(session_factory, ServiceRequest, rid).status == 'COMPLETED'


def test_assign_sets_assigned_at_once_and_moves_to_assigned(uow, guard, session_factory, staff, lg, clock):
    other = seed_user(session_factory, 'tech_lg_2', 'TECHNICIAN', lg)
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='UNDER_INSPECTION')
    manager = actor_for(session_factory, staff['lg_manager'])
    first = clock()
    with uow() as u:
        guard.assign_technician(u, rid, manager, staff['tech1'])
    clock.advance(hours=2)
    with uow() as u:
        guard.assign_technician(u, rid, manager, other)
    req = fetch(session_factory, ServiceRequest, rid)
    assert req.status == 'ASSIGNED'
    assert req.assigned_technician_id == other
    assert _naive(req.assigned_at) == _naive(first)
    rows = all_rows(session_factory, RequestActivity, request_id=rid)
    assert (rows[1].old_value, rows[1].new_value) == (str(staff['tech1']), str(other))


def test_assign_on_completed_keeps_status(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='COMPLETED')
    with uow() as u:
        req = guard.assign_technician(u, rid, actor_for(session_factory, staff['lg_manager']), staff['tech1'])
    assert req.status == 'COMPLETED'


def test_assign_rejects_non_technicians_and_inactive(uow, guard, session_factory, staff, lg):
    inactive = seed_user(session_factory, 'retired_tech', 'TECHNICIAN', lg, is_active=False)
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='NEW')
    manager = actor_for(session_factory, staff['lg_manager'])
    for candidate in (staff['warehouse'], inactive, 4242):
        with pytest.raises(ValidationError):
            with uow() as u:
                guard.assign_technician(u, rid, manager, candidate)
    assert count_rows(session_factory, RequestActivity, request_id=rid) == 0


def test_assign_across_departments_requires_top_tier(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='NEW')
    with pytest.raises(ForbiddenError):
        with uow() as u:
            guard.assign_technician(u, rid, actor_for(session_factory, staff['lg_supervisor']), staff['tech2'])
    with uow() as u:
        req = guard.assign_technician(u, rid, actor_for(session_factory, staff['admin']), staff['tech2'])
    assert req.assigned_technician_id == staff['tech2']


def test_technician_cannot_assign(uow, guard, session_factory, staff, lg):
    rid = seed_request(session_factory, lg, staff['lg_manager'], status='NEW')
    with pytest.raises(ForbiddenError):
        with uow() as u:
            guard.assign_technician(u, rid, actor_for(session_factory, staff['tech1']), staff['tech1'])
