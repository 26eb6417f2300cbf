# tests/conftest.py
import httpx
import pytest

from fake_service import ACCOUNT, API_KEY, FakeMochow, create_app
from mochow_client import ClientConfig, MochowClient

ENDPOINT = "http://mochow.test:5287"


def _make_config(**options) -> ClientConfig:
    # no real sleeping between retries in tests
    options.setdefault("backoff_base_s", 0.0)
    return ClientConfig.build(ACCOUNT, API_KEY, ENDPOINT, **options)


@pytest.fixture
def make_config():
    return _make_config


@pytest.fixture
def fake() -> FakeMochow:
    return FakeMochow()


@pytest.fixture
def traces() -> list:
    return []


@pytest.fixture
async def client(fake, traces):
    transport = httpx.ASGITransport(app=create_app(fake))
    cli = MochowClient(_make_config(), http_transport=transport, trace_sink=traces.append)
    yield cli
    await cli.aclose()


BOOK_SCHEMA = {
    "fields": [
        {"fieldName": "id", "fieldType": "STRING", "primaryKey": True, "partitionKey": True, "notNull": True},
        {"fieldName": "bookName", "fieldType": "STRING", "notNull": True},
        {"fieldName": "author", "fieldType": "STRING"},
        {"fieldName": "page", "fieldType": "UINT32"},
        {"fieldName": "vector", "fieldType": "FLOAT_VECTOR", "notNull": True, "dimension": 3},
    ],
    "indexes": [
        {
            "indexName": "vector_idx", "field": "vector", "indexType": "HNSW", "metricType": "L2",
            "params": {"M": 32, "efConstruction": 200},
        },
    ],
}


@pytest.fixture
def book_schema() -> dict:
    return BOOK_SCHEMA


@pytest.fixture
async def book_table(client):
    await client.databases.create("book")
    await client.tables.create("book", "book_segments", BOOK_SCHEMA)
    return "book", "book_segments"
