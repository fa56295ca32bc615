import mongomock
import pytest
from fastapi.testclient import TestClient

import database
from main import app
from schemas import Admin, Book, Role
from security import create_access_token, hash_password


@pytest.fixture
def mongo(monkeypatch):
    db = mongomock.MongoClient(tz_aware=True)["bookshop_test"]
    monkeypatch.setattr(database, "db", db)
    database.ensure_indexes()
    return db


@pytest.fixture
def client(mongo):
    return TestClient(app)


@pytest.fixture
def make_book(mongo):
    def _make(**overrides):
        data = {
            "title": "মৃত্যু ও তার পরে",
            "author": "Abdullah Al Mamun",
            "price": 500,
            "stock": 5,
        }
        data.update(overrides)
        return database.create_document(database.BOOKS, Book(**data))
    return _make


@pytest.fixture
def make_admin(mongo):
    def _make(email="super@bookshop.com", password="secret123", role=Role.super_admin, is_active=True):
        admin = Admin(
            username=email.split("@")[0],
            email=email,
            password=hash_password(password),
            role=role,
            is_active=is_active,
        )
        admin_id = database.create_document(database.ADMINS, admin)
        return database.get_document_by_id(database.ADMINS, admin_id)
    return _make


def bearer(admin):
    return {"Authorization": f"Bearer {create_access_token(admin)}"}


@pytest.fixture
def super_admin(make_admin):
    return make_admin()


@pytest.fixture
def super_headers(super_admin):
    return bearer(super_admin)


@pytest.fixture
def admin_headers(make_admin):
    return bearer(make_admin(email="staff@bookshop.com", role=Role.admin))


@pytest.fixture
def order_payload():
    def _payload(*lines, **extra):
        payload = {
            "customer": {
                "name": "Rahim Uddin",
                "email": "rahim@gmail.com",
                "phone": "01711000000",
                "address": "House 12, Road 5, Dhanmondi",
                "city": "Dhaka",
                "postalCode": "1205",
            },
            "books": [{"bookId": book_id, "quantity": quantity} for book_id, quantity in lines],
            "paymentMethod": "cod",
        }
        payload.update(extra)
        return payload
    return _payload


@pytest.fixture
def headers_for():
    return bearer


@pytest.fixture
def stock_of(mongo):
    def _stock(book_id):
        return mongo[database.BOOKS].find_one({"_id": database.to_object_id(book_id)})["stock"]
    return _stock
