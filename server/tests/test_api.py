import re

from fastapi.testclient import TestClient

from main import create_app
from store import StoreError


def test_create_room(client):
    res = client.post('/api/rooms', json={'name': 'Sprint Planning'})
    assert res.status_code == 201
    data = res.json()
    assert re.fullmatch(r'sprint-planning-[a-z0-9]{4}', data['slug'])
    assert data == {'slug': data['slug'], 'name': 'Sprint Planning', 'private': False}


def test_create_private_room_hides_access_code(client):
    res = client.post('/api/rooms', json={'name': 'Secret', 'private': True, 'accessCode': 'x1'})
    assert res.status_code == 201
    assert 'accessCode' not in res.json()
    assert res.json()['private'] is True


def test_create_room_requires_name(client):
    assert client.post('/api/rooms', json={}).status_code == 400
    assert client.post('/api/rooms', json={'name': '   '}).status_code == 400


def test_get_room(client, make_room):
    slug = make_room('Retro')
    res = client.get(f'/api/rooms/{slug}')
    assert res.status_code == 200
    assert res.json() == {'slug': slug, 'name': 'Retro', 'private': False}


def test_get_missing_room(client):
    assert client.get('/api/rooms/nothing-here').status_code == 404


def test_health(client, make_room):
    make_room()
    res = client.get('/api/health')
    assert res.status_code == 200
    assert res.json() == {'status': 'ok', 'store': 'LocalStore', 'rooms': 0, 'connections': 0}


class BrokenStore:
    async def load(self, slug):
        raise StoreError('disk on fire')

    async def save(self, slug, room):
        raise StoreError('disk on fire')

    async def delete(self, slug):
        raise StoreError('disk on fire')

    async def list_slugs(self):
        raise StoreError('disk on fire')


def test_store_failures_become_500():
    with TestClient(create_app(store=BrokenStore(), run_reaper=False)) as client:
        assert client.post('/api/rooms', json={'name': 'X'}).status_code == 500
        assert client.get('/api/rooms/x-0000').status_code == 500
