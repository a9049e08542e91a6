# tests/test_repository_selector.py
import asyncio

import pytest

from app.core.exceptions import StorageUnavailableError
from app.repositories.memory import MemoryDaoRepository
from app.repositories.mongo import MongoDaoRepository
from app.repositories.selector import RepositoryProvider, StorageBackend

from conftest import make_settings


class FakeDatabase:
    def __getitem__(self, name):
        return object()


class ConnectSpy:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.calls = 0

    async def __call__(self, settings):
        self.calls += 1
        await asyncio.sleep(0)
        if self.fail:
            raise ConnectionError("connection refused")
        return FakeDatabase()


async def _no_prepare(db):
    return None


class TestRepositoryProvider:
    @pytest.mark.asyncio
    async def test_memory_singleton_without_connection_under_concurrency(self):
        spy = ConnectSpy()
        provider = RepositoryProvider(make_settings(use_mongo=False), connect=spy, prepare=_no_prepare)

        repos = await asyncio.gather(*(provider.get_dao_repository() for _ in range(100)))

        assert all(r is repos[0] for r in repos)
        assert isinstance(repos[0], MemoryDaoRepository)
        assert spy.calls == 0
        assert provider.connect_attempts == 0
        assert provider.backend is StorageBackend.MEMORY
        assert provider.degraded is False

    @pytest.mark.asyncio
    async def test_mongo_selected_when_connection_succeeds(self):
        spy = ConnectSpy()
        provider = RepositoryProvider(make_settings(use_mongo=True), connect=spy, prepare=_no_prepare)

        repo = await provider.get_dao_repository()

        assert isinstance(repo, MongoDaoRepository)
        assert provider.backend is StorageBackend.MONGO
        assert spy.calls == 1

    @pytest.mark.asyncio
    async def test_fallback_to_memory_is_permanent(self):
        spy = ConnectSpy(fail=True)
        provider = RepositoryProvider(
            make_settings(use_mongo=True, strict_db_mode=False, fallback_on_db_error=True),
            connect=spy,
            prepare=_no_prepare,
        )

        first = await provider.get_dao_repository()
        spy.fail = False
        second = await provider.get_dao_repository()

        assert isinstance(first, MemoryDaoRepository)
        assert second is first
        assert spy.calls == 1
        assert provider.degraded is True

    @pytest.mark.asyncio
    async def test_strict_mode_without_fallback_raises_and_memoizes_nothing(self):
        spy = ConnectSpy(fail=True)
        provider = RepositoryProvider(
            make_settings(use_mongo=True, strict_db_mode=True, fallback_on_db_error=False),
            connect=spy,
            prepare=_no_prepare,
        )

        with pytest.raises(StorageUnavailableError) as exc:
            await provider.get_dao_repository()
        assert isinstance(exc.value.__cause__, ConnectionError)
        assert provider.backend is None

        spy.fail = False
        assert isinstance(await provider.get_dao_repository(), MongoDaoRepository)
        assert spy.calls == 2

    @pytest.mark.asyncio
    async def test_strict_mode_with_fallback_degrades(self):
        provider = RepositoryProvider(
            make_settings(use_mongo=True, strict_db_mode=True, fallback_on_db_error=True),
            connect=ConnectSpy(fail=True),
            prepare=_no_prepare,
        )
        assert isinstance(await provider.get_dao_repository(), MemoryDaoRepository)

    @pytest.mark.asyncio
    async def test_concurrent_first_calls_settle_on_one_backend(self):
        spy = ConnectSpy()
        provider = RepositoryProvider(make_settings(use_mongo=True), connect=spy, prepare=_no_prepare)

        repos = await asyncio.gather(*(provider.get_user_repository() for _ in range(10)))

        assert all(r is repos[0] for r in repos)
        assert provider.backend is StorageBackend.MONGO
        assert spy.calls >= 1

    @pytest.mark.asyncio
    async def test_one_repository_per_entity(self):
        provider = RepositoryProvider(make_settings(), connect=ConnectSpy(), prepare=_no_prepare)
        assert await provider.get_comment_repository() is await provider.get_comment_repository()
        assert await provider.get_comment_repository() is not await provider.get_notification_repository()
