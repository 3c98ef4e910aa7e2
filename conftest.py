import asyncio

import pytest
from mongomock_motor import AsyncMongoMockClient

from store import TenantStore

TENANT = "tenant-a"


@pytest.fixture
def db():
    return AsyncMongoMockClient()["assessment_test"]


@pytest.fixture
def store(db):
    return TenantStore(db, TENANT)


@pytest.fixture
def run():
    return asyncio.run
