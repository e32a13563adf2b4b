import mongomock
import pytest

from storefront import create_app
from storefront.auth import create_user, generate_token
from storefront.models import utcnow


@pytest.fixture
def app():
    client = mongomock.MongoClient()
    app = create_app('testing', mongo_client=client)
    yield app
    client.drop_database(app.config['MONGO_DB_NAME'])


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def db(app):
    return app.extensions['mongo_client'][app.config['MONGO_DB_NAME']]


@pytest.fixture
def make_user(app):
    """Creates a user straight in the store and returns (user, auth headers)."""
    counter = {'n': 0}

    def _make_user(role='customer', email=None, password='secret123', name=None):
        counter['n'] += 1
        email = email or f"user{counter['n']}@example.com"
        with app.app_context():
            from storefront import get_db
            user = create_user(get_db(), name or f"User {counter['n']}", email, password, role=role)
            token = generate_token(user)
        return user, {'Authorization': f'Bearer {token}'}

    return _make_user


@pytest.fixture
def admin(make_user):
    return make_user(role='admin', email='admin@example.com')


@pytest.fixture
def customer(make_user):
    return make_user(email='jane@example.com', name='Jane')


@pytest.fixture
def make_category(db):
    def _make_category(name, parent=None):
        now = utcnow()
        doc = {'name': name, 'description': None, 'image': None, 'parent': parent,
               'createdAt': now, 'updatedAt': now}
        doc['_id'] = db.categories.insert_one(doc).inserted_id
        return doc
    return _make_category
