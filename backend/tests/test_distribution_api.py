from distribution import get_db
from distribution.models.audit import AuditLog
from distribution.models.order import Order
from distribution.models.delivery_staff import DeliveryStaff
from distribution.models.delivery_assignment import DeliveryAssignment
from tests.test_utils_seed import create_order, ensure_staff, fresh
from tests.test_lifecycle_helpers import (
    COURIER_PERMS, assert_error, assert_transition, courier_headers, distributor_headers, jwt_headers, ready_order,
)


def _prepare_over_http(client, headers, order_id):
    assert_transition(client, f'/orders/{order_id}/status', headers, 200, expected_body_value='confirmed',
                      json={'status': 'confirmed'})
    started = client.post(f'/distribution/start-preparation/{order_id}', headers=headers)
    assert started.status_code == 200, started.get_json()
    checklist = started.get_json()
    assert checklist['status'] == 'preparing'
    assert checklist['total'] == 3 and checklist['remaining'] == 3
    return [i['id'] for i in checklist['data']]


def _toggle(client, headers, item_id, value=True):
    resp = client.put(f'/distribution/preparation-items/{item_id}', headers=headers, json={'isPrepared': value})
    assert resp.status_code == 200, resp.get_json()
    return resp.get_json()


def test_end_to_end_delivery(client, app_instance, clock):
    with app_instance.app_context():
        headers = distributor_headers()
        order = create_order()
        item_ids = _prepare_over_http(client, headers, order.id)
        for item_id in item_ids:
            assert _toggle(client, headers, item_id)['is_prepared'] is True
        assert_transition(client, f'/distribution/complete-preparation/{order.id}', headers, 200,
                          expected_body_value='ready')

        staff = ensure_staff('Salim')
        avail = client.get('/distribution/available-delivery/1', headers=headers).get_json()
        assert [s['id'] for s in avail['data']] == [staff.id]
        assert avail['data'][0]['current_orders'] == 0

        resp = client.post(f'/distribution/assign-delivery/{order.id}', headers=headers,
                           json={'deliveryStaffId': staff.id, 'expectedDeliveryMinutes': 40})
        assert resp.status_code == 201, resp.get_json()
        body = resp.get_json()
        assert body['assignment_status'] == 'assigned'
        assert body['staff']['name'] == 'Salim'
        assert body['order']['id'] == order.id
        assert fresh(DeliveryStaff, staff.id).current_orders == 1

        courier = courier_headers(staff.id)
        clock.advance(minutes=2)
        assert_transition(client, f'/distribution/accept-order/{order.id}', courier, 200,
                          expected_body_key='assignment_status', expected_body_value='accepted')
        assert fresh(Order, order.id).status == 'out_for_delivery'
        for action, status in (('pickup', 'picked_up'), ('arriving', 'arriving'), ('deliver', 'delivered')):
            clock.advance(minutes=5)
            assert_transition(client, f'/distribution/{action}-order/{order.id}', courier, 200,
                              expected_body_key='assignment_status', expected_body_value=status)

        detail = client.get(f'/orders/{order.id}', headers=headers).get_json()
        assert detail['status'] == 'delivered'
        assert 'assignment' not in detail
        assert fresh(DeliveryStaff, staff.id).current_orders == 0
        history = client.get(f'/distribution/assignments/{order.id}', headers=headers).get_json()
        assert [a['assignment_status'] for a in history['data']] == ['delivered']
        assert history['data'][0]['is_late'] is False


def test_unanswered_assignment_expires_and_order_is_reassigned(client, app_instance, clock, notifier):
    with app_instance.app_context():
        headers = distributor_headers()
        order = ready_order(clock)
        s, t = ensure_staff('S'), ensure_staff('T')
        resp = client.post(f'/distribution/assign-delivery/{order.id}', headers=headers,
                           json={'deliveryStaffId': s.id, 'acceptTimeoutMinutes': 5})
        assert resp.status_code == 201
        first_id = resp.get_json()['id']

        clock.advance(minutes=6)
        late = client.post(f'/distribution/accept-order/{order.id}', headers=courier_headers(s.id))
        assert_error(late, 409, 'deadline_expired')

        active = client.get('/distribution/active-deliveries', headers=headers).get_json()
        assert active['data'] == []
        assert fresh(DeliveryAssignment, first_id).assignment_status == 'expired'
        assert fresh(DeliveryStaff, s.id).current_orders == 0
        assert fresh(Order, order.id).status == 'ready'
        assert ('courier', s.id, order.id, 'assignment.expired', {'assignment_id': first_id}) in notifier.events

        resp = client.post(f'/distribution/assign-delivery/{order.id}', headers=headers,
                           json={'deliveryStaffId': t.id})
        assert resp.status_code == 201
        history = client.get(f'/distribution/assignments/{order.id}', headers=headers).get_json()
        assert [a['assignment_status'] for a in history['data']] == ['expired', 'assigned']
        assert [a['delivery_staff_id'] for a in history['data']] == [s.id, t.id]


def test_complete_preparation_with_missing_items_returns_422(client, app_instance):
    with app_instance.app_context():
        headers = distributor_headers()
        order = create_order()
        item_ids = _prepare_over_http(client, headers, order.id)
        _toggle(client, headers, item_ids[0])
        _toggle(client, headers, item_ids[2])
        resp = client.post(f'/distribution/complete-preparation/{order.id}', headers=headers)
        err = assert_error(resp, 422, 'incomplete_preparation')
        assert err['remaining_item_ids'] == [item_ids[1]]
        assert err['remaining'] == 1
        listing = client.get(f'/distribution/preparation-items/{order.id}', headers=headers).get_json()
        assert listing['status'] == 'preparing'
        assert listing['remaining_item_ids'] == [item_ids[1]]


def test_assign_errors_over_http(client, app_instance, clock):
    with app_instance.app_context():
        headers = distributor_headers()
        order = ready_order(clock)
        staff = ensure_staff(max_orders=1)
        missing = client.post(f'/distribution/assign-delivery/{order.id}', headers=headers, json={})
        assert_error(missing, 400, 'validation_error')
        bad = client.post(f'/distribution/assign-delivery/{order.id}', headers=headers,
                          json={'deliveryStaffId': staff.id, 'acceptTimeoutMinutes': 0})
        assert_error(bad, 400, 'validation_error')
        unknown = client.post(f'/distribution/assign-delivery/{order.id}', headers=headers,
                              json={'deliveryStaffId': 9999})
        assert_error(unknown, 404, 'not_found')
        ok = client.post(f'/distribution/assign-delivery/{order.id}', headers=headers,
                         json={'deliveryStaffId': staff.id})
        assert ok.status_code == 201
        dup = client.post(f'/distribution/assign-delivery/{order.id}', headers=headers,
                          json={'deliveryStaffId': staff.id})
        assert_error(dup, 409, 'conflict')
        other = ready_order(clock)
        full = client.post(f'/distribution/assign-delivery/{other.id}', headers=headers,
                           json={'deliveryStaffId': staff.id})
        assert_error(full, 409, 'staff_unavailable')
        pending = create_order()
        not_ready = client.post(f'/distribution/assign-delivery/{pending.id}', headers=headers,
                                json={'deliveryStaffId': staff.id})
        assert_error(not_ready, 409, 'invalid_state')


def test_out_of_order_courier_action_is_invalid_state(client, app_instance, clock):
    with app_instance.app_context():
        order = ready_order(clock)
        staff = ensure_staff()
        courier = courier_headers(staff.id)
        none_yet = client.post(f'/distribution/accept-order/{order.id}', headers=courier)
        assert_error(none_yet, 409, 'invalid_state')
        client.post(f'/distribution/assign-delivery/{order.id}', headers=distributor_headers(),
                    json={'deliveryStaffId': staff.id})
        resp = client.post(f'/distribution/deliver-order/{order.id}', headers=courier)
        assert_error(resp, 409, 'invalid_state')


def test_reject_over_http_records_reason(client, app_instance, clock):
    with app_instance.app_context():
        order = ready_order(clock)
        staff = ensure_staff()
        client.post(f'/distribution/assign-delivery/{order.id}', headers=distributor_headers(),
                    json={'deliveryStaffId': staff.id})
        resp = client.post(f'/distribution/reject-order/{order.id}', headers=courier_headers(staff.id),
                           json={'reason': 'outside my area'})
        assert resp.status_code == 200
        body = resp.get_json()
        assert body['assignment_status'] == 'rejected'
        assert body['rejection_reason'] == 'outside my area'
        assert fresh(DeliveryStaff, staff.id).current_orders == 0


def test_orders_to_prepare_etag_and_filters(client, app_instance, clock):
    with app_instance.app_context():
        headers = distributor_headers()
        create_order()
        ready = ready_order(clock)
        resp = client.get('/distribution/orders-to-prepare', headers=headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert [o['id'] for o in body['data']] == [ready.id]
        assert body['pagination']['total'] == 1
        etag = resp.headers['ETag']
        again = client.get('/distribution/orders-to-prepare', headers={**headers, 'If-None-Match': etag})
        assert again.status_code == 304
        head = client.head('/distribution/orders-to-prepare', headers=headers)
        assert head.status_code == 200 and head.data == b''
        assert head.headers['ETag'] == etag

        # assignment state is part of the ETag even though the order row keeps its timestamp
        staff = ensure_staff()
        client.post(f'/distribution/assign-delivery/{ready.id}', headers=headers, json={'deliveryStaffId': staff.id})
        changed = client.get('/distribution/orders-to-prepare', headers={**headers, 'If-None-Match': etag})
        assert changed.status_code == 200
        assert changed.get_json()['data'][0]['assignment']['delivery_staff_id'] == staff.id

        filtered = client.get('/distribution/orders-to-prepare?status=confirmed', headers=headers).get_json()
        assert filtered['data'] == []


def test_my_delivery_orders_lists_only_own_active(client, app_instance, clock):
    with app_instance.app_context():
        headers = distributor_headers()
        mine, theirs = ensure_staff('Mine'), ensure_staff('Theirs')
        o1, o2 = ready_order(clock), ready_order(clock)
        for order, staff in ((o1, mine), (o2, theirs)):
            client.post(f'/distribution/assign-delivery/{order.id}', headers=headers, json={'deliveryStaffId': staff.id})
        resp = client.get('/distribution/my-delivery-orders', headers=courier_headers(mine.id))
        assert resp.status_code == 200
        data = resp.get_json()['data']
        assert [a['order_id'] for a in data] == [o1.id]
        assert data[0]['order']['shipping_info'] == {'address': 'Way 1234, Muscat'}
        no_staff = client.get('/distribution/my-delivery-orders', headers=jwt_headers(50, COURIER_PERMS))
        assert no_staff.status_code == 403


def test_sweep_endpoint_and_audit_trail(client, app_instance, clock):
    with app_instance.app_context():
        headers = distributor_headers()
        order = ready_order(clock)
        staff = ensure_staff()
        assignment_id = client.post(f'/distribution/assign-delivery/{order.id}', headers=headers,
                                    json={'deliveryStaffId': staff.id, 'acceptTimeoutMinutes': 1}).get_json()['id']
        clock.advance(minutes=2)
        resp = client.post('/distribution/sweep', headers=headers)
        assert resp.status_code == 200
        assert resp.get_json() == {'expired': [assignment_id], 'late': []}
        assert client.post('/distribution/sweep', headers=headers).get_json() == {'expired': [], 'late': []}

        session = get_db()
        actions = [a.action for a in session.query(AuditLog).order_by(AuditLog.id).all()]
        assert actions == ['ASSIGNMENT.CREATE', 'ASSIGNMENT.SWEEP', 'ASSIGNMENT.SWEEP']
        created = session.query(AuditLog).filter_by(action='ASSIGNMENT.CREATE').one()
        assert created.entity == 'DeliveryAssignment'
        assert created.entity_id == str(assignment_id)
        assert created.meta['delivery_staff_id'] == staff.id
        assert created.actor_user_id == 1


def test_status_change_audit_records_diff(client, app_instance):
    with app_instance.app_context():
        headers = distributor_headers()
        order = create_order()
        resp = client.post(f'/orders/{order.id}/status', headers=headers, json={'status': 'cancelled', 'reason': 'dup'})
        assert resp.status_code == 200
        log = get_db().query(AuditLog).filter_by(action='ORDER.STATUS').one()
        assert log.meta['changes'] == {'status': {'before': 'pending', 'after': 'cancelled'}}
        assert log.meta['reason'] == 'dup'
        # failed requests leave no audit row
        again = client.post(f'/orders/{order.id}/status', headers=headers, json={'status': 'cancelled'})
        assert_error(again, 409, 'invalid_state')
        bogus = client.post(f'/orders/{order.id}/status', headers=headers, json={'status': 'shipped'})
        assert_error(bogus, 400, 'validation_error')
        assert get_db().query(AuditLog).filter_by(action='ORDER.STATUS').count() == 1


def test_unavailable_items_endpoint(client, app_instance, clock):
    with app_instance.app_context():
        headers = distributor_headers()
        order = create_order()
        client.post(f'/orders/{order.id}/status', headers=headers, json={'status': 'confirmed'})
        resp = client.put(f'/distribution/unavailable-items/{order.id}', headers=headers,
                          json={'items': [{'productId': 101, 'substitutionPreference': 'call_me'}]})
        assert resp.status_code == 200, resp.get_json()
        body = resp.get_json()
        assert body['unavailable_items'][0]['product_name'] == 'Milk 1L'
        assert len(body['items']) == 3
        bad = client.put(f'/distribution/unavailable-items/{order.id}', headers=headers,
                         json={'items': [{'productId': 555}]})
        assert_error(bad, 400, 'validation_error')


def test_missing_permission_is_forbidden(client, app_instance, clock):
    with app_instance.app_context():
        order = ready_order(clock)
        staff = ensure_staff()
        resp = client.post(f'/distribution/assign-delivery/{order.id}', headers=courier_headers(staff.id),
                           json={'deliveryStaffId': staff.id})
        assert resp.status_code == 403
        assert resp.get_json()['error']['detail'] == 'Missing permission'
        unauthenticated = client.get('/distribution/orders-to-prepare')
        assert unauthenticated.status_code == 401


def test_order_detail_expires_stale_assignment(client, app_instance, clock):
    with app_instance.app_context():
        headers = distributor_headers()
        order = ready_order(clock)
        staff = ensure_staff()
        resp = client.post(f'/distribution/assign-delivery/{order.id}', headers=headers,
                           json={'deliveryStaffId': staff.id, 'acceptTimeoutMinutes': 5})
        assert resp.status_code == 201
        assignment_id = resp.get_json()['id']
        shown = client.get(f'/orders/{order.id}', headers=headers).get_json()
        assert shown['assignment']['assignment_status'] == 'assigned'

        clock.advance(minutes=10)
        detail = client.get(f'/orders/{order.id}', headers=headers)
        assert detail.status_code == 200
        body = detail.get_json()
        assert body['status'] == 'ready'
        assert 'assignment' not in body
        assert fresh(DeliveryAssignment, assignment_id).assignment_status == 'expired'
        assert fresh(DeliveryStaff, staff.id).current_orders == 0


def test_reassign_right_after_deadline_without_a_read(client, app_instance, clock):
    with app_instance.app_context():
        headers = distributor_headers()
        order = ready_order(clock)
        s, t = ensure_staff('S'), ensure_staff('T')
        first = client.post(f'/distribution/assign-delivery/{order.id}', headers=headers,
                            json={'deliveryStaffId': s.id, 'acceptTimeoutMinutes': 5})
        assert first.status_code == 201

        clock.advance(minutes=10)
        second = client.post(f'/distribution/assign-delivery/{order.id}', headers=headers,
                             json={'deliveryStaffId': t.id})
        assert second.status_code == 201, second.get_json()
        assert second.get_json()['delivery_staff_id'] == t.id
        assert fresh(DeliveryAssignment, first.get_json()['id']).assignment_status == 'expired'
        assert fresh(DeliveryStaff, s.id).current_orders == 0
        assert fresh(DeliveryStaff, t.id).current_orders == 1
