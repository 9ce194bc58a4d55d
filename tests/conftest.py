import pytest
from flask_jwt_extended import create_access_token

from roster_api import create_app
from roster_api.extensions import db
from roster_api.models.employee import Employee
from roster_api.models.security import Role, UserRole
from roster_api.models.user import User
from roster_api.services.notify_config import NotificationConfig

RECIPIENTS = {"central": "964949887", "supervisor-turno": "981841759"}


@pytest.fixture(scope="function")
def app(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///:memory:")
    monkeypatch.setenv("JWT_SECRET_KEY", "test-secret-key-that-is-long-enough-for-hs256")
    monkeypatch.setenv("NOTIFY_WORKER_ENABLED", "0")
    app = create_app()
    app.config["TESTING"] = True
    app.extensions["notify_config"] = NotificationConfig(recipients=RECIPIENTS)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope="function")
def session(app):
    return db.session


@pytest.fixture
def juan(session):
    e = Employee(rut="11111111-1", first_name="Juan", last_name="Pérez", phone="911111111")
    session.add(e); session.commit()
    return e


@pytest.fixture
def maria(session):
    e = Employee(rut="22222222-2", first_name="María", last_name="González", phone=None)
    session.add(e); session.commit()
    return e


def _user_with_role(session, email, role_code):
    role = Role.query.filter_by(code=role_code).first()
    if not role:
        role = Role(code=role_code)
        session.add(role); session.commit()
    u = User(email=email, full_name=email.split("@")[0].title(), status="active")
    u.set_password("4445")
    session.add(u); session.commit()
    session.add(UserRole(user_id=u.id, role_id=role.id)); session.commit()
    return u


@pytest.fixture
def supervisor(session):
    return _user_with_role(session, "supervisor@test.local", "supervisor")


@pytest.fixture
def viewer(session):
    return _user_with_role(session, "viewer@test.local", "viewer")


def bearer(user, roles):
    token = create_access_token(identity=str(user.id), additional_claims={"roles": roles})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(app):
    return bearer
