def test_register_login_refresh_and_me(client):
    r = client.post('/auth/register', json={
        'email': 'Nuevo@Test.com',
        'password': 'secret123',
        'name': 'Nuevo',
        'role': 'ADMIN',
    })
    assert r.status_code == 200
    tokens = r.json()
    assert 'access_token' in tokens

    r = client.post('/auth/login', json={'email': 'nuevo@test.com', 'password': 'secret123'})
    assert r.status_code == 200
    access = r.json()['access_token']
    refresh = r.json()['refresh_token']

    r = client.get('/auth/me', headers={'Authorization': f'Bearer {access}'})
    assert r.status_code == 200
    # el registro público siempre crea clientes
    assert r.json()['role'] == 'CLIENTE'

    r = client.post('/auth/refresh', json={'refresh_token': refresh})
    assert r.status_code == 200

    # un access token no sirve como refresh
    r = client.post('/auth/refresh', json={'refresh_token': access})
    assert r.status_code == 401


def test_duplicate_email_and_bad_credentials(client, customer):
    r = client.post('/auth/register', json={'email': customer.email, 'password': 'secret123'})
    assert r.status_code == 400

    r = client.post('/auth/login', json={'email': customer.email, 'password': 'wrong'})
    assert r.status_code == 401


def test_protected_routes_require_token(client):
    assert client.get('/orders/').status_code == 401
    assert client.get('/orders/', headers={'Authorization': 'Bearer nope'}).status_code == 401


def test_health(client):
    r = client.get('/health')
    assert r.status_code == 200
    assert r.json() == {'status': 'ok'}
