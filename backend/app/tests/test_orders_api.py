from app.models.notification import Notification


ORDER_PAYLOAD = {
    'items': [
        {'product_id': 1, 'product_name': 'Anillo', 'quantity': 2, 'unit_price': 10},
        {'product_id': 2, 'product_name': 'Cadena', 'quantity': 1, 'unit_price': 5},
    ],
    'notes': 'Sin prisa',
}


def _create(client, headers):
    r = client.post('/orders/', json=ORDER_PAYLOAD, headers=headers)
    assert r.status_code == 201
    return r.json()


def test_order_flow(client, db, customer, customer_headers, admin_headers):
    order = _create(client, customer_headers)
    assert order['status'] == 'UNDER_REVIEW'
    assert order['total'] == 25.0
    assert order['folio'] == 'ORD-000001'
    first, second = order['items']

    r = client.post(f"/orders/{order['id']}/review-availability", json={'items': [
        {'item_id': first['id'], 'is_available': True, 'confirmed_quantity': 1},
        {'item_id': second['id'], 'is_available': False},
    ]}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()['status'] == 'PARTIALLY_AVAILABLE'
    assert r.json()['total'] == 10.0

    r = client.post(f"/orders/{order['id']}/confirm-by-customer", headers=customer_headers)
    assert r.json()['status'] == 'IN_PREPARATION'

    r = client.post(f"/orders/{order['id']}/mark-ready", headers=admin_headers)
    assert r.json()['status'] == 'READY_FOR_PICKUP'

    r = client.post(f"/orders/{order['id']}/complete", headers=admin_headers)
    assert r.json()['status'] == 'COMPLETED'
    assert r.json()['completed_at'] is not None

    notifications = db.query(Notification).filter(Notification.user_id == customer.id).all()
    assert sorted(n.status for n in notifications) == [
        'COMPLETED', 'IN_PREPARATION', 'PARTIALLY_AVAILABLE', 'READY_FOR_PICKUP',
    ]


def test_errors_are_json_with_code(client, customer_headers, admin_headers):
    order = _create(client, customer_headers)

    r = client.post(f"/orders/{order['id']}/mark-ready", headers=admin_headers)
    assert r.status_code == 400
    body = r.json()
    assert body['code'] == 'invalid_transition'
    assert body['from_status'] == 'UNDER_REVIEW'
    assert body['to_status'] == 'READY_FOR_PICKUP'

    r = client.post(f"/orders/{order['id']}/review-availability", json={'items': []}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json()['code'] == 'validation_error'

    r = client.get('/orders/999', headers=customer_headers)
    assert r.status_code == 404
    assert r.json()['code'] == 'not_found'


def test_admin_only_endpoints(client, customer_headers):
    order = _create(client, customer_headers)
    r = client.post(f"/orders/{order['id']}/mark-ready", headers=customer_headers)
    assert r.status_code == 403
    r = client.patch(f"/orders/{order['id']}/status", json={'status': 'COMPLETED'}, headers=customer_headers)
    assert r.status_code == 403
    assert client.get('/orders/counts', headers=customer_headers).status_code == 403


def test_customers_only_see_their_orders(client, customer_headers, other_headers, admin_headers):
    order = _create(client, customer_headers)
    _create(client, other_headers)

    r = client.get('/orders/', headers=customer_headers)
    assert [o['id'] for o in r.json()] == [order['id']]
    assert len(client.get('/orders/', headers=admin_headers).json()) == 2

    r = client.get(f"/orders/{order['id']}", headers=other_headers)
    assert r.status_code == 403
    r = client.post(f"/orders/{order['id']}/cancel", headers=other_headers)
    assert r.status_code == 403

    r = client.post(f"/orders/{order['id']}/cancel", headers=customer_headers)
    assert r.json()['status'] == 'CANCELLED'

    counts = client.get('/orders/counts', headers=admin_headers).json()
    assert counts['CANCELLED'] == 1
    assert counts['total'] == 2


def test_manual_status_update(client, customer_headers, admin_headers):
    order = _create(client, customer_headers)
    r = client.patch(f"/orders/{order['id']}/status", json={'status': 'AVAILABLE'}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()['status'] == 'AVAILABLE'

    r = client.patch(f"/orders/{order['id']}/status", json={'status': 'LOST'}, headers=admin_headers)
    assert r.status_code == 400


def test_create_order_payload_validation(client, customer_headers):
    r = client.post('/orders/', json={'items': [{'product_name': 'X', 'quantity': 0, 'unit_price': 1}]},
                    headers=customer_headers)
    assert r.status_code == 422
    r = client.post('/orders/', json={'items': []}, headers=customer_headers)
    assert r.status_code == 400
