# tests/test_mongodb_connection.py
import asyncio

import pytest
from pymongo.errors import ServerSelectionTimeoutError

from app.db import mongodb

from conftest import make_settings


class FakeAdmin:
    def __init__(self, client):
        self.client = client

    async def command(self, name):
        # laisse les autres connexions démarrer avant de répondre
        await asyncio.sleep(self.client.delay)
        if self.client.fail:
            raise ServerSelectionTimeoutError("no server")
        return {"ok": 1}


class FakeClient:
    instances: list["FakeClient"] = []
    plan: list[tuple[float, bool]] = []

    def __init__(self, uri, **options):
        self.uri = uri
        self.options = options
        self.delay, self.fail = self.plan.pop(0) if self.plan else (0, False)
        self.closed = False
        self.admin = FakeAdmin(self)
        FakeClient.instances.append(self)

    def __getitem__(self, name):
        return ("db", name, id(self))

    def close(self):
        self.closed = True


@pytest.fixture
def fake_client(monkeypatch):
    FakeClient.instances = []
    FakeClient.plan = []
    monkeypatch.setattr(mongodb, "AsyncIOMotorClient", FakeClient)
    monkeypatch.setattr(mongodb, "client", None)
    monkeypatch.setattr(mongodb, "db", None)
    return FakeClient


@pytest.fixture
def mongo_settings():
    return make_settings(use_mongo=True, mongodb_db="dao_test")


class TestConnectToDatabase:
    @pytest.mark.asyncio
    async def test_second_call_reuses_connection(self, fake_client, mongo_settings):
        first = await mongodb.connect_to_database(mongo_settings)
        second = await mongodb.connect_to_database(mongo_settings)

        assert first is second
        assert len(fake_client.instances) == 1
        assert fake_client.instances[0].options["tz_aware"] is True

    @pytest.mark.asyncio
    async def test_concurrent_first_calls_keep_one_client(self, fake_client, mongo_settings):
        fake_client.plan = [(0.02, False), (0, False), (0.01, False)]

        results = await asyncio.gather(*(mongodb.connect_to_database(mongo_settings) for _ in range(3)))

        winner = fake_client.instances[1]
        assert all(r == results[0] for r in results)
        assert results[0][2] == id(winner)
        assert mongodb.client is winner
        assert [c.closed for c in fake_client.instances] == [True, False, True]

        mongodb.disconnect_from_database()
        assert winner.closed
        assert mongodb.client is None and mongodb.db is None

    @pytest.mark.asyncio
    async def test_failed_attempt_keeps_established_connection(self, fake_client, mongo_settings):
        fake_client.plan = [(0, False), (0.01, True)]

        results = await asyncio.gather(
            mongodb.connect_to_database(mongo_settings),
            mongodb.connect_to_database(mongo_settings),
            return_exceptions=True,
        )

        live, failed = fake_client.instances
        assert isinstance(results[1], ServerSelectionTimeoutError)
        assert failed.closed
        assert not live.closed
        assert mongodb.client is live
        assert mongodb.db == results[0]

    @pytest.mark.asyncio
    async def test_failure_leaves_nothing_behind(self, fake_client, mongo_settings):
        fake_client.plan = [(0, True)]

        with pytest.raises(ServerSelectionTimeoutError):
            await mongodb.connect_to_database(mongo_settings)

        assert fake_client.instances[0].closed
        assert mongodb.client is None and mongodb.db is None
