import os
import tempfile

_tmp_dir = tempfile.mkdtemp(prefix="novelhub-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_tmp_dir, "test.db")
os.environ["UPLOAD_FOLDER"] = os.path.join(_tmp_dir, "uploads")
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret-key-that-is-long-enough-for-hs256"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["BCRYPT_LOG_ROUNDS"] = "4"
os.environ["IMAGE_STORAGE"] = "local"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"
os.environ.pop("ADMIN_PASSWORD", None)
os.environ.pop("REGISTRATION_DISABLED", None)

import pytest
from app import app as flask_app, seed_defaults
from models import db, User, Genre, Novel, Chapter

PASSWORD = "Secret#123"


@pytest.fixture
def app():
    flask_app.config.update(TESTING=True, REGISTRATION_DISABLED=False, MAILGUN_DOMAIN=None, MAILGUN_API_KEY=None)
    with flask_app.app_context():
        db.drop_all()
        db.create_all()
        seed_defaults()
    yield flask_app
    with flask_app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_user(app):
    def _make(username, role="reader", wallet_coins=0, premium_until=None, password=PASSWORD):
        with app.app_context():
            user = User(username=username, email=f"{username}@example.com", role=role,
                        wallet_coins=wallet_coins, premium_until=premium_until)
            user.set_password(password)
            db.session.add(user)
            db.session.commit()
            return user.id
    return _make


@pytest.fixture
def login(app):
    """Return a fresh test client carrying the session cookie of ``username``."""
    def _login(username, password=PASSWORD):
        client = app.test_client()
        resp = client.post("/api/auth/login", json={"username": username, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return client
    return _login


@pytest.fixture
def genre_ids(app):
    with app.app_context():
        return [genre.id for genre in Genre.query.order_by(Genre.id).limit(2)]


@pytest.fixture
def make_novel(app, genre_ids):
    def _make(author_id, title="The Long Road", description="A journey north.", genres=None, **fields):
        with app.app_context():
            ids = genres if genres is not None else genre_ids
            novel = Novel(title=title, description=description, author_id=author_id,
                          genres=Genre.query.filter(Genre.id.in_(ids)).all(), **fields)
            db.session.add(novel)
            db.session.commit()
            return novel.id
    return _make


@pytest.fixture
def make_chapter(app):
    def _make(novel_id, number=1, title=None, content="<p>Once upon a time.</p>", status="PUBLISHED",
              is_premium=False, coins_cost=0):
        with app.app_context():
            chapter = Chapter(novel_id=novel_id, chapter_number=number, title=title or f"Chapter {number}",
                              content=content, status=status, is_premium=is_premium, coins_cost=coins_cost)
            db.session.add(chapter)
            db.session.commit()
            return chapter.id
    return _make
