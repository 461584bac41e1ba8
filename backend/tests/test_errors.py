from tests.test_lifecycle_helpers import jwt_headers
from tests.test_utils_seed import seed_staff


def test_unknown_path_returns_error_json(client):
    resp = client.get('/non-existent-path')
    # Flask default 404 should be wrapped by error handler
    assert resp.status_code == 404
    body = resp.get_json()
    assert body['error']['status'] == 404
    assert body['error']['title'] == 'Not Found'
    assert 'detail' in body['error']


def test_internal_error_shape(client, app_instance, app_factory, monkeypatch):
    staff = seed_staff(app_factory)
    headers = jwt_headers(app_instance, staff['warehouse'])
    import aftersales.routes.storage as storage_mod

    class BoomSession:
        def execute(self, *a, **k):
            raise RuntimeError('explode')

    # auth still uses the real session; only the categories query breaks
    monkeypatch.setattr(storage_mod, 'get_db', lambda: BoomSession())
    resp = client.get('/storage/categories', headers=headers)
    assert resp.status_code == 500
    body = resp.get_json()
    assert body['error'] == {'status': 500, 'title': 'Internal Server Error', 'detail': 'Unexpected error'}


def test_conflict_renders_as_409(client, app_instance, app_factory, monkeypatch):
    from aftersales.errors import ConflictError
    staff = seed_staff(app_factory)
    headers = jwt_headers(app_instance, staff['admin'])
    services = app_instance.extensions['aftersales']

    def stale(*a, **k):
        raise ConflictError()

    monkeypatch.setattr(services.sla, 'check_overdue', stale)
    resp = client.post('/requests/sla/check', headers=headers)
    assert resp.status_code == 409
    assert resp.get_json()['error']['detail'] == 'Concurrent update detected, retry the operation'
