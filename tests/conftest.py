"""
Pytest configuration and shared fixtures.

Provides a test application, database session, and test client that
all test modules can use.  The ``testing`` configuration points at an
in-memory SQLite database; the schema is created before and dropped
after every test, so each test starts empty.

Service tests take ``db_session`` (an application context stays pushed
for the whole test).  Route tests take ``client`` plus one of the
``*_headers`` fixtures and open their own ``app.app_context()`` when
they need to inspect the database.
"""

import pytest

from app import create_app
from app.extensions import db as _db
from app.models.user import ROLE_ADMIN, ROLE_SO_ASSET_USER, ROLE_VIEWER, User
from app.services import auth_service
from app.services.table_store_client import TableStoreError


@pytest.fixture(scope="session")
def app():
    """Create a Flask application configured for testing."""
    return create_app("testing")


@pytest.fixture(autouse=True)
def _schema(app):  # pylint: disable=redefined-outer-name
    """Create every table before the test and drop them afterwards."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.session.remove()
        _db.drop_all()


@pytest.fixture(scope="function")
def db_session(app):  # pylint: disable=redefined-outer-name
    """
    Provide the SQLAlchemy session inside an application context.

    Services commit freely; the schema fixture throws everything away
    after the test.
    """
    with app.app_context():
        yield _db.session


@pytest.fixture(scope="function")
def client(app):  # pylint: disable=redefined-outer-name
    """
    Provide a Flask test client for making HTTP requests.

    Usage in tests::

        def test_health(client):
            response = client.get("/health")
            assert response.status_code == 200
    """
    with app.test_client() as test_client:
        yield test_client


# -- Users and tokens ------------------------------------------------------


def _create_user(app, role: str, email: str, password: str = "secret123") -> dict:
    with app.app_context():
        user = User(
            email=email,
            name=email.split("@")[0].title(),
            password=auth_service.hash_password(password),
            role=role,
            is_active=True,
        )
        _db.session.add(user)
        _db.session.commit()
        return {
            "id": user.id,
            "email": user.email,
            "password": password,
            "token": auth_service.create_token(user),
        }


@pytest.fixture
def admin_user(app):  # pylint: disable=redefined-outer-name
    return _create_user(app, ROLE_ADMIN, "boss@example.com")


@pytest.fixture
def editor_user(app):  # pylint: disable=redefined-outer-name
    return _create_user(app, ROLE_SO_ASSET_USER, "auditor@example.com")


@pytest.fixture
def viewer_user(app):  # pylint: disable=redefined-outer-name
    return _create_user(app, ROLE_VIEWER, "reader@example.com")


@pytest.fixture
def admin_headers(admin_user):  # pylint: disable=redefined-outer-name
    return {"Authorization": f"Bearer {admin_user['token']}"}


@pytest.fixture
def editor_headers(editor_user):  # pylint: disable=redefined-outer-name
    return {"Authorization": f"Bearer {editor_user['token']}"}


@pytest.fixture
def viewer_headers(viewer_user):  # pylint: disable=redefined-outer-name
    return {"Authorization": f"Bearer {viewer_user['token']}"}


# -- Table store double ----------------------------------------------------


class FakeTableStore:
    """
    In-memory stand-in for ``TableStoreClient``.

    ``missing`` lists tables that answer like PostgREST does for an
    unknown relation; ``fail_on`` makes every call for a table raise a
    generic error.
    """

    def __init__(self, missing=(), fail_on=()):
        self.tables: dict[str, list[dict]] = {}
        self.missing = set(missing)
        self.fail_on = set(fail_on)
        self.calls: list[tuple[str, str, int]] = []

    def _check(self, table: str) -> None:
        if table in self.fail_on:
            raise TableStoreError("permission denied for table " + table, code="42501")
        if table in self.missing:
            raise TableStoreError(
                f'relation "public.{table}" does not exist', code="42P01"
            )

    def delete_all(self, table: str) -> None:
        self.calls.append(("delete", table, 0))
        self._check(table)
        self.tables[table] = []

    def insert(self, table: str, rows: list[dict]) -> int:
        self.calls.append(("insert", table, len(rows)))
        self._check(table)
        self.tables.setdefault(table, []).extend(rows)
        return len(rows)

    def select_all(self, table: str) -> list[dict]:
        self._check(table)
        return list(self.tables.get(table, []))

    def close(self) -> None:
        pass


@pytest.fixture
def fake_table_store():
    return FakeTableStore()
