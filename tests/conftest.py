import pytest
from fastapi.testclient import TestClient

from examprep.auth import hash_password
from examprep.config import Settings, get_settings
from examprep.database import Database, SqliteEngine
from examprep.main import app, get_db
from examprep.schema import DEMO_USER, ensure_schema, seed_sample_content


@pytest.fixture()
def db(tmp_path):
    database = Database(SqliteEngine(path=str(tmp_path / 'test.sqlite')))
    ensure_schema(database)
    return database


@pytest.fixture()
def seeded_db(db):
    seed_sample_content(db, hash_password)
    return db


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        jwt_secret='test-secret',
        sqlite_path=str(tmp_path / 'test.sqlite'),
        seed_sample_data=False,
        token_file=str(tmp_path / 'session.json'),
    )


@pytest.fixture()
def client(seeded_db, settings):
    app.dependency_overrides[get_db] = lambda: seeded_db
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers(client):
    response = client.post('/api/auth/login', json={'email': DEMO_USER['email'], 'password': DEMO_USER['password']})
    assert response.status_code == 200
    return {'Authorization': f"Bearer {response.json()['token']}"}
