"""
Pytest fixtures for marketplace bulk upload tests.

Provides an in-memory database per test, shop/user/taxonomy fixtures,
fake object store and cache clients, and a spreadsheet builder.
"""

import fnmatch
import os
import uuid

import httpx
import pytest
from openpyxl import Workbook

from marketplace import create_app
from marketplace.extensions import db, object_store, catalog_cache
from marketplace.models import Shop, User, Category, SubCategory
from marketplace.services.workbook_service import TEMPLATE_HEADERS, TEMPLATE_COLUMNS


class FakeS3Client:
    """Records put/delete calls the way boto3's S3 client receives them."""

    def __init__(self):
        self.objects = {}
        self.deleted = []

    def put_object(self, Bucket, Key, Body, ContentType):
        self.objects[Key] = {"bucket": Bucket, "body": Body, "content_type": ContentType}
        return {"ETag": uuid.uuid4().hex}

    def delete_object(self, Bucket, Key):
        self.objects.pop(Key, None)
        self.deleted.append(Key)
        return {}


class FakeRedis:
    def __init__(self, keys=()):
        self.keys = set(keys)

    def scan_iter(self, match=None):
        return [key for key in sorted(self.keys) if match is None or fnmatch.fnmatch(key, match)]

    def delete(self, *keys):
        removed = [key for key in keys if key in self.keys]
        self.keys.difference_update(removed)
        return len(removed)


def _image_handler(request: httpx.Request) -> httpx.Response:
    path = request.url.path
    if path.endswith("/missing.jpg"):
        return httpx.Response(404, text="not found")
    if path.endswith("/timeout.jpg"):
        raise httpx.ConnectTimeout("timed out", request=request)
    if path.endswith(".html"):
        return httpx.Response(200, headers={"content-type": "text/html"}, text="<html></html>")
    if path.endswith(".png"):
        return httpx.Response(200, headers={"content-type": "image/png"}, content=b"\x89PNG")
    return httpx.Response(200, headers={"content-type": "image/jpeg"}, content=b"\xff\xd8\xff")


@pytest.fixture
def upload_dir(tmp_path):
    path = tmp_path / "uploads"
    path.mkdir()
    return path


@pytest.fixture
def s3_client():
    return FakeS3Client()


@pytest.fixture
def redis_client():
    return FakeRedis(
        keys={
            "api:1:/products?page=1",
            "user:7:/products",
            "api:1:/sales-report/daily",
            "salesreport:2026-10",
            "api:1:/orders",
        }
    )


@pytest.fixture
def app(upload_dir, s3_client, redis_client):
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite://',
        'UPLOAD_FOLDER': str(upload_dir),
        'AWS_STORAGE_BUCKET_NAME': 'test-bucket',
        'AWS_S3_PUBLIC_BASE_URL': 'https://cdn.test',
        'REDIS_URL': None,
        'LOG_LEVEL': 'DEBUG',
    })
    object_store.client = s3_client
    object_store.http_client = httpx.Client(transport=httpx.MockTransport(_image_handler))
    catalog_cache.client = redis_client

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()

    object_store.client = None
    object_store.http_client = None
    catalog_cache.client = None


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def db_session(app):
    return db.session


@pytest.fixture
def shop(db_session):
    shop = Shop(name="Shop A - Gadgets", code="SHOPA", is_active=True)
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture
def other_shop(db_session):
    shop = Shop(name="Shop B - Garden", code="SHOPB", is_active=True)
    db_session.add(shop)
    db_session.commit()
    return shop


@pytest.fixture
def user(db_session, shop):
    user = User(shop_id=shop.id, email="owner@shopa.test", first_name="Ada", last_name="Owner")
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def headers(shop, user):
    return {"X-Shop-Id": str(shop.id), "X-User-Id": str(user.id)}


@pytest.fixture
def taxonomy(db_session):
    """Two active categories with one subcategory each, plus an inactive one."""
    electronics = Category(name="Electronics", status="active")
    garden = Category(name="Garden", status="active")
    archived = Category(name="Archived", status="inactive")
    db_session.add_all([electronics, garden, archived])
    db_session.flush()

    phones = SubCategory(category_id=electronics.id, name="Phones")
    tools = SubCategory(category_id=garden.id, name="Tools")
    old = SubCategory(category_id=archived.id, name="Old")
    db_session.add_all([phones, tools, old])
    db_session.commit()
    return {
        "electronics": electronics,
        "garden": garden,
        "archived": archived,
        "phones": phones,
        "tools": tools,
        "old": old,
    }


@pytest.fixture
def make_row(taxonomy):
    """Factory for a fully valid raw row (canonical keys, string values)."""
    category_id = str(taxonomy["electronics"].id)
    subcategory_id = str(taxonomy["phones"].id)

    def factory(**overrides):
        row = {column.key: "" for column in TEMPLATE_COLUMNS}
        row.update({
            "productId": "PROD001",
            "productName": "Sample Phone",
            "categoryId": category_id,
            "subCategoryId": subcategory_id,
            "unit": "piece",
            "sku": "SKU001",
            "unitPrice": "25000",
            "currentStock": "100",
        })
        row.update(overrides)
        return row

    return factory


@pytest.fixture
def make_workbook(tmp_path):
    """Write rows to an .xlsx file in the template layout and return its path."""

    def factory(rows, sheet_name="Products", headers=TEMPLATE_HEADERS, with_instructions=True):
        workbook = Workbook()
        if with_instructions:
            workbook.active.title = "Instructions"
            workbook.active.append(["Fill in the Products sheet"])
            sheet = workbook.create_sheet(sheet_name)
        else:
            sheet = workbook.active
            sheet.title = sheet_name
        sheet.append(list(headers))
        keys = [header.rstrip("*") for header in headers]
        for row in rows:
            sheet.append([row.get(key) or None for key in keys])
        path = os.path.join(str(tmp_path), f"{uuid.uuid4().hex}.xlsx")
        workbook.save(path)
        return path

    return factory
