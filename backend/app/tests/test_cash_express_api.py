from app.models.notification import Notification


IDENTITY = {
    'sender_name': 'Ana López',
    'sender_phone': '5512345678',
    'recipient_name': 'Luis López',
    'recipient_phone': '5587654321',
    'recipient_relationship': 'Hermano',
}


def test_public_endpoints(client):
    r = client.get('/cash-express/config/public')
    assert r.status_code == 200
    body = r.json()
    assert body['service_days'] == [1, 2, 3, 4, 5]
    assert body['commission_percentage'] == 6.5
    assert 'available_balance' not in body

    r = client.get('/cash-express/suggested-availability', params={'amount': 300})
    assert r.status_code == 200
    assert r.json()['is_available_now'] is False
    assert r.json()['message'].startswith('Fecha estimada de entrega')

    r = client.get('/cash-express/suggested-availability', params={'amount': 0})
    assert r.status_code == 422

    r = client.get('/cash-express/balance')
    assert r.json()['available_balance'] == 0.0


def test_request_lifecycle(client, db, customer, customer_headers, admin_headers):
    r = client.post('/cash-express/', json={'amount': 100}, headers=customer_headers)
    assert r.status_code == 201
    request = r.json()
    assert request['folio'] == 'CE-000001'
    assert request['total_to_deposit'] == 107.0
    assert request['commission'] == 6.5
    rid = request['id']

    r = client.put(f'/cash-express/{rid}/deposit-receipt', json={'deposit_receipt': 'https://files/1.jpg'},
                   headers=customer_headers)
    assert r.status_code == 200
    assert r.json()['status'] == 'PENDIENTE'

    r = client.post(f'/cash-express/{rid}/deposit-receipt/confirm', headers=customer_headers)
    assert r.json()['status'] == 'EN_ESPERA_CONFIRMACION'

    r = client.patch(f'/cash-express/{rid}/status', json={'status': 'DEPOSITO_VALIDADO'}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()['available_from'] is not None

    r = client.put(f'/cash-express/{rid}/recipient', json=IDENTITY, headers=customer_headers)
    assert r.json()['recipient_relationship'] == 'Hermano'

    r = client.put(f'/cash-express/{rid}/signed-receipt', json={'signed_receipt': 'https://files/firma.jpg'},
                   headers=admin_headers)
    assert r.json()['signed_receipt'] == 'https://files/firma.jpg'

    r = client.patch(f'/cash-express/{rid}/status', json={'status': 'ENTREGADO'}, headers=admin_headers)
    assert r.status_code == 400
    assert r.json()['code'] == 'insufficient_funds'

    r = client.post('/cash-express/balance', json={'amount': 150, 'description': 'Fondo'}, headers=admin_headers)
    assert r.json()['balance']['new_balance'] == 150.0

    r = client.patch(f'/cash-express/{rid}/status', json={'status': 'ENTREGADO'}, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()['status'] == 'ENTREGADO'

    assert client.get('/cash-express/balance').json()['available_balance'] == 50.0
    history = client.get('/cash-express/balance/history', headers=admin_headers).json()
    assert history['total'] == 2
    assert history['history'][0]['amount'] == -100.0
    assert history['history'][0]['request_id'] == rid

    statuses = {n.status for n in db.query(Notification).filter(Notification.user_id == customer.id)}
    assert statuses == {'EN_ESPERA_CONFIRMACION', 'DEPOSITO_VALIDADO', 'ENTREGADO'}


def test_request_validation_and_permissions(client, customer_headers, other_headers, admin_headers):
    r = client.post('/cash-express/', json={'amount': 5000}, headers=customer_headers)
    assert r.status_code == 400
    assert r.json()['code'] == 'validation_error'
    assert r.json()['max_amount'] == 1000.0

    rid = client.post('/cash-express/', json={'amount': 200}, headers=customer_headers).json()['id']

    assert client.get(f'/cash-express/{rid}', headers=other_headers).status_code == 403
    assert client.get('/cash-express/', headers=other_headers).json() == []
    assert len(client.get('/cash-express/', headers=admin_headers).json()) == 1

    r = client.patch(f'/cash-express/{rid}/status', json={'status': 'REBOTADO'}, headers=customer_headers)
    assert r.status_code == 403

    r = client.patch(f'/cash-express/{rid}/status', json={'status': 'ENTREGADO'}, headers=admin_headers)
    assert r.json()['code'] == 'invalid_transition'

    r = client.post(f'/cash-express/{rid}/cancel', headers=customer_headers)
    assert r.json()['status'] == 'CANCELADO'
    assert r.json()['cancelled_at'] is not None


def test_config_admin(client, customer_headers, admin_headers):
    assert client.get('/cash-express/config', headers=customer_headers).status_code == 403

    r = client.put('/cash-express/config', json={
        'service_days': [1, 2, 3, 4, 5, 6],
        'holidays': ['2026-12-25'],
        'commission_percentage': 5,
    }, headers=admin_headers)
    assert r.status_code == 200
    assert r.json()['service_days'] == [1, 2, 3, 4, 5, 6]
    assert r.json()['holidays'] == ['2026-12-25']

    r = client.put('/cash-express/config', json={'start_time': '21:00'}, headers=admin_headers)
    assert r.status_code == 400
    r = client.put('/cash-express/config', json={'service_days': []}, headers=admin_headers)
    assert r.status_code == 400
    r = client.put('/cash-express/config', json={'holidays': ['25/12/2026']}, headers=admin_headers)
    assert r.status_code == 400

    r = client.get('/cash-express/config', headers=admin_headers)
    assert r.json()['commission_percentage'] == 5.0
    assert r.json()['start_time'] == '09:00'


def test_bank_accounts(client, admin_headers):
    r = client.post('/cash-express/bank-accounts', json={
        'beneficiary_name': 'Tienda SA',
        'bank_name': 'Banco',
        'account_number': '1234567890',
        'clabe': '123',
    }, headers=admin_headers)
    assert r.status_code == 400

    r = client.post('/cash-express/bank-accounts', json={
        'beneficiary_name': 'Tienda SA',
        'bank_name': 'Banco',
        'account_number': '1234567890',
        'clabe': '012345678901234567',
    }, headers=admin_headers)
    assert r.status_code == 201
    account_id = r.json()['id']

    assert len(client.get('/cash-express/config/public').json()['bank_accounts']) == 1

    r = client.put(f'/cash-express/bank-accounts/{account_id}', json={'is_active': False}, headers=admin_headers)
    assert r.json()['is_active'] is False
    assert client.get('/cash-express/config/public').json()['bank_accounts'] == []
    assert client.get('/cash-express/bank-accounts', headers=admin_headers).json() == []
    assert len(client.get('/cash-express/bank-accounts', params={'include_inactive': True},
                          headers=admin_headers).json()) == 1

    r = client.delete(f'/cash-express/bank-accounts/{account_id}', headers=admin_headers)
    assert r.status_code == 204
    r = client.delete(f'/cash-express/bank-accounts/{account_id}', headers=admin_headers)
    assert r.status_code == 404


def test_notification_inbox_api(client, customer_headers, other_headers, admin_headers):
    rid = client.post('/cash-express/', json={'amount': 200}, headers=customer_headers).json()['id']
    client.post(f'/cash-express/{rid}/cancel', headers=admin_headers)

    assert client.get('/notifications/unread-count', headers=customer_headers).json() == {'count': 1}
    notifications = client.get('/notifications/', headers=customer_headers).json()
    assert notifications[0]['status'] == 'CANCELADO'
    nid = notifications[0]['id']

    assert client.patch(f'/notifications/{nid}/read', headers=other_headers).status_code == 403
    r = client.patch(f'/notifications/{nid}/read', headers=customer_headers)
    assert r.json()['read'] is True
    assert client.patch('/notifications/read-all', headers=customer_headers).json() == {'updated': 0}

    assert client.delete(f'/notifications/{nid}', headers=customer_headers).status_code == 204
    assert client.get('/notifications/', headers=customer_headers).json() == []
