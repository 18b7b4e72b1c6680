"""
nORM - Test fixtures
"""
import pytest

from norm import create_app
from norm.database import db
from norm.models.db_models import DBClient, DBKeyword, DBUser, ClientRole
from norm.services.rbac_service import add_client_member


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def cron_headers(app):
    return {'Authorization': f"Bearer {app.config['CRON_SECRET']}"}


def make_user(email='owner@example.com', name='Owner', password='senha1234'):
    user = DBUser(email=email, name=name, password=password)
    db.session.add(user)
    db.session.commit()
    return user


def make_client(owner=None, name='Empresa XYZ', website='https://xyz.com.br', role=ClientRole.ADMIN, **kwargs):
    client = DBClient(name=name, website=website, created_by=owner.id if owner else None, **kwargs)
    db.session.add(client)
    if owner:
        add_client_member(client.id, owner.id, role)
    db.session.commit()
    return client


def make_keyword(client, keyword='empresa xyz', alert_threshold=5):
    kw = DBKeyword(client_id=client.id, keyword=keyword, alert_threshold=alert_threshold)
    db.session.add(kw)
    db.session.commit()
    return kw


def auth_headers(user):
    from norm.routes.auth import generate_token
    return {'Authorization': f'Bearer {generate_token(user)}'}
