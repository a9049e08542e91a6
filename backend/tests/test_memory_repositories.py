# tests/test_memory_repositories.py
import datetime as dt

import pytest
import pytest_asyncio
from pydantic import ValidationError

from app.core.exceptions import DuplicateKeyError
from app.models.comment import TaskComment
from app.models.notification import PersistedNotification
from app.models.user import User
from app.repositories.base import DaoQuery
from app.repositories.memory import (
    MemoryCommentRepository,
    MemoryDaoRepository,
    MemoryNotificationRepository,
    MemoryUserRepository,
)

from conftest import make_dao

UTC = dt.timezone.utc


@pytest_asyncio.fixture
async def dao_repo():
    repo = MemoryDaoRepository()
    await repo.insert_many(
        [
            make_dao("d1", "DAO-2025-001", autorite="Mairie de Lyon", depot=dt.datetime(2025, 2, 1, tzinfo=UTC),
                     created_at=dt.datetime(2025, 1, 1, tzinfo=UTC), objet_dossier="Pont suspendu"),
            make_dao("d2", "DAO-2025-002", autorite="Région Nord", depot=dt.datetime(2025, 3, 1, tzinfo=UTC),
                     created_at=dt.datetime(2025, 1, 2, tzinfo=UTC), objet_dossier="École primaire"),
            make_dao("d3", "DAO-2025-003", autorite="Mairie de Lyon", depot=dt.datetime(2025, 4, 1, tzinfo=UTC),
                     created_at=dt.datetime(2025, 1, 3, tzinfo=UTC), reference="PONT-B"),
            make_dao("d4", "DAO-2024-010", autorite="Région Nord", depot=dt.datetime(2024, 12, 1, tzinfo=UTC),
                     created_at=dt.datetime(2024, 12, 1, tzinfo=UTC)),
        ]
    )
    return repo


class TestMemoryDaoRepository:
    @pytest.mark.asyncio
    async def test_search_is_case_insensitive_across_fields(self, dao_repo):
        page = await dao_repo.find_and_paginate(DaoQuery(search="pont", sort="numero_liste", order="asc"))
        assert [d.id for d in page.items] == ["d1", "d3"]
        assert page.total == 2

    @pytest.mark.asyncio
    async def test_autorite_and_date_range_filters(self, dao_repo):
        query = DaoQuery(
            autorite="Mairie de Lyon",
            date_from=dt.date(2025, 2, 1),
            date_to=dt.date(2025, 3, 31),
        )
        page = await dao_repo.find_and_paginate(query)
        assert [d.id for d in page.items] == ["d1"]

    @pytest.mark.asyncio
    async def test_total_counts_filtered_not_paginated(self, dao_repo):
        page = await dao_repo.find_and_paginate(DaoQuery(sort="numero_liste", order="asc", page=2, page_size=3))
        assert page.total == 4
        assert [d.id for d in page.items] == ["d3"]

    @pytest.mark.asyncio
    async def test_sort_descending_by_date(self, dao_repo):
        page = await dao_repo.find_and_paginate(DaoQuery(sort="date_depot", order="desc"))
        assert [d.id for d in page.items] == ["d3", "d2", "d1", "d4"]

    @pytest.mark.parametrize("field", ["equipe", "tasks", "unknown"])
    def test_sort_is_limited_to_scalar_fields(self, field):
        with pytest.raises(ValidationError):
            DaoQuery(sort=field)

    @pytest.mark.asyncio
    async def test_insert_duplicate_numero_is_reported_distinctly(self, dao_repo):
        with pytest.raises(DuplicateKeyError) as exc:
            await dao_repo.insert(make_dao("d9", "DAO-2025-002"))
        assert exc.value.key == "numero_liste"

        with pytest.raises(DuplicateKeyError) as exc:
            await dao_repo.insert(make_dao("d1", "DAO-2025-099"))
        assert exc.value.key == "id"

    @pytest.mark.asyncio
    async def test_update_merges_fields_and_returns_copy(self, dao_repo):
        updated = await dao_repo.update("d2", {"objet_dossier": "Collège"})
        assert updated.objet_dossier == "Collège"
        assert updated.numero_liste == "DAO-2025-002"

        updated.objet_dossier = "mutation locale"
        stored = await dao_repo.find_by_id("d2")
        assert stored.objet_dossier == "Collège"

    @pytest.mark.asyncio
    async def test_update_unknown_returns_none(self, dao_repo):
        assert await dao_repo.update("missing", {"reference": "X"}) is None

    @pytest.mark.asyncio
    async def test_numero_year_last_created_and_count(self, dao_repo):
        assert sorted(d.id for d in await dao_repo.find_by_numero_year(2025)) == ["d1", "d2", "d3"]
        assert (await dao_repo.get_last_created()).id == "d3"
        assert await dao_repo.count() == 4
        assert await dao_repo.delete_by_id("d3") is True
        assert (await dao_repo.get_last_created()).id == "d2"
        await dao_repo.delete_all()
        assert await dao_repo.count() == 0


class TestMemoryUserRepository:
    @pytest.mark.asyncio
    async def test_create_merges_on_active_email(self):
        repo = MemoryUserRepository()
        first = await repo.create(User(id="u1", name="Alice", email="alice@dao-tracker.fr"))
        merged = await repo.create(User(id="u2", name="Alice B.", email="ALICE@dao-tracker.fr", role="admin"))

        assert merged.id == first.id
        assert merged.name == "Alice B."
        assert merged.role == "admin"
        assert [u.id for u in await repo.list_active()] == ["u1"]

    @pytest.mark.asyncio
    async def test_deactivated_email_can_be_reused(self):
        repo = MemoryUserRepository()
        await repo.create(User(id="u1", name="Alice", email="alice@dao-tracker.fr"))
        assert await repo.deactivate_by_id("u1") is True
        assert await repo.find_by_email("alice@dao-tracker.fr") is None

        created = await repo.create(User(id="u2", name="Alice", email="alice@dao-tracker.fr"))
        assert created.id == "u2"

    @pytest.mark.asyncio
    async def test_duplicate_id_raises(self):
        repo = MemoryUserRepository()
        await repo.create(User(id="u1", name="Alice", email="alice@dao-tracker.fr"))
        with pytest.raises(DuplicateKeyError):
            await repo.create(User(id="u1", name="Bob", email="bob@dao-tracker.fr"))


class TestMemoryCommentAndNotificationRepositories:
    @pytest.mark.asyncio
    async def test_comments_newest_first(self):
        repo = MemoryCommentRepository()
        for i in range(3):
            await repo.add(
                TaskComment(
                    id=f"c{i}",
                    dao_id="d1",
                    task_id=1 if i < 2 else 2,
                    user_id="u1",
                    user_name="Alice",
                    content=f"commentaire {i}",
                    created_at=dt.datetime(2025, 1, 1 + i, tzinfo=UTC),
                )
            )
        assert [c.id for c in await repo.list_by_dao("d1")] == ["c2", "c1", "c0"]
        assert [c.id for c in await repo.list_by_task("d1", 1)] == ["c1", "c0"]
        assert [c.id for c in await repo.list_recent(1)] == ["c2"]

    @pytest.mark.asyncio
    async def test_notifications_capped_newest_first(self):
        repo = MemoryNotificationRepository(max_items=3)
        for i in range(5):
            await repo.add(
                PersistedNotification(
                    id=f"n{i}", type="system", title="t", message="m", created_at=f"2025-01-0{i + 1}T00:00:00Z"
                )
            )
        assert [n.id for n in await repo.list_for_user("u1")] == ["n4", "n3", "n2"]
        assert await repo.mark_all_read("u1") == 3
        assert await repo.mark_all_read("u1") == 0
