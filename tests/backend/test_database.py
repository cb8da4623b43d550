import pytest
from fastapi.testclient import TestClient
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

from backend import database as database_module
from backend.core.errors import DatabaseUnavailableError
from backend.database import ConnectionState, Database, ensure_database_ready
from backend.main import app
from conftest import auth_headers


def test_connect_creates_schema_and_becomes_ready() -> None:
    database = Database('sqlite://')

    database.connect()

    assert database.state is ConnectionState.READY
    tables = set(inspect(database.engine).get_table_names())
    assert {'users', 'patients', 'doctors', 'appointments', 'medical_records'} <= tables
    database.disconnect()
    assert database.state is ConnectionState.DISCONNECTED


def test_session_is_refused_before_connect() -> None:
    with pytest.raises(DatabaseUnavailableError):
        Database('sqlite://').session()


def test_failed_connect_records_error() -> None:
    database = Database('sqlite:////nonexistent-dir/hospital.db')

    with pytest.raises(OperationalError):
        database.connect()

    assert database.state is ConnectionState.FAILED
    assert database.health_check()['error']


def test_ensure_database_ready_translates_failure() -> None:
    database = Database('sqlite:////nonexistent-dir/hospital.db')

    with pytest.raises(DatabaseUnavailableError):
        ensure_database_ready(database)


def test_health_endpoint_reports_ready(client) -> None:
    response = client.get('/api/health')

    assert response.status_code == 200
    assert response.json() == {'status': 'ok', 'database': {'state': 'ready', 'error': None}}


def test_health_endpoint_reports_unavailable_database(client, database) -> None:
    database.disconnect()

    response = client.get('/api/health')

    assert response.status_code == 503
    assert response.json()['database']['state'] == 'disconnected'


def test_requests_return_503_when_database_cannot_connect(client, database, monkeypatch: pytest.MonkeyPatch) -> None:
    database.disconnect()

    def refuse():
        raise OperationalError('SELECT 1', {}, Exception('connection refused'))

    monkeypatch.setattr(database, 'connect', refuse)

    response = client.get('/api/doctors', headers={'Authorization': 'Bearer anything'})

    assert response.status_code == 503
    assert response.json() == {'message': 'Database unavailable. Verify DATABASE_URL and database credentials.'}


def test_unhandled_errors_are_opaque(client, admin, monkeypatch: pytest.MonkeyPatch) -> None:
    def explode(*args, **kwargs):
        raise RuntimeError('secret internals')

    monkeypatch.setattr('backend.routes.appointment_routes.resolve_scope', explode)

    response = client.get('/api/appointments', headers=auth_headers(admin))

    assert response.status_code == 500
    assert response.json() == {'message': 'Server error'}


def test_engine_options_for_memory_sqlite_share_one_connection() -> None:
    options = database_module._engine_options('sqlite://', connect_timeout=5)

    assert options['connect_args'] == {'check_same_thread': False}
    assert options['poolclass'].__name__ == 'StaticPool'


def test_engine_options_for_postgres_use_timeout() -> None:
    options = database_module._engine_options('postgresql://user:pw@db/hospital', connect_timeout=3)

    assert options == {'pool_pre_ping': True, 'connect_args': {'connect_timeout': 3}}


def test_app_lifespan_connects_and_disconnects(monkeypatch: pytest.MonkeyPatch) -> None:
    database = Database('sqlite://')
    monkeypatch.setattr(app.state, 'database', database)

    with TestClient(app) as client:
        assert database.state is ConnectionState.READY
        assert client.get('/api/health').status_code == 200

    assert database.state is ConnectionState.DISCONNECTED


def test_app_lifespan_survives_unreachable_database(monkeypatch: pytest.MonkeyPatch) -> None:
    database = Database('sqlite:////nonexistent-dir/hospital.db')
    monkeypatch.setattr(app.state, 'database', database)

    with TestClient(app) as client:
        response = client.get('/api/health')

    assert response.status_code == 503
    assert response.json()['status'] == 'degraded'
