# tests/test_dao_service.py
import pytest

from app.core.exceptions import DuplicateKeyError, NotFoundError, PermissionDeniedError, SequenceExhaustedError, ValidationFailedError
from app.core.utils import utcnow
from app.models.dao import DaoTask, DaoUpdate, TaskUpdate, TeamMember, default_tasks
from app.repositories.base import DaoQuery
from app.services.dao_numbering import format_numero

from conftest import make_payload


class TestCreateDao:
    @pytest.mark.asyncio
    async def test_creates_with_generated_number_and_default_tasks(self, ctx, admin):
        dao = await ctx.daos.create_dao(make_payload(objet_dossier="  <b>Pont</b> neuf "), admin)
        await ctx.notifications.drain()

        assert dao.numero_liste == format_numero(utcnow().year, 1)
        assert dao.objet_dossier == "Pont neuf"
        assert [t.name for t in dao.tasks] == [t.name for t in default_tasks()]
        assert all(t.last_updated_by == "admin" for t in dao.tasks)

        assert ctx.notifications.items[0].type == "dao_created"
        history = ctx.daos.list_history()
        assert history[0].event_type == "dao_created"
        assert history[0].numero_liste == dao.numero_liste

    @pytest.mark.asyncio
    async def test_numbers_increase(self, ctx, admin):
        first = await ctx.daos.create_dao(make_payload(), admin)
        second = await ctx.daos.create_dao(make_payload(), admin)
        await ctx.notifications.drain()

        year = utcnow().year
        assert (first.numero_liste, second.numero_liste) == (format_numero(year, 1), format_numero(year, 2))
        assert await ctx.daos.peek_next_dao_number() == format_numero(year, 3)

    @pytest.mark.asyncio
    async def test_retries_on_numero_collision(self, ctx, admin, monkeypatch):
        repo = await ctx.repositories.get_dao_repository()
        original = repo.insert
        attempts = []

        async def flaky_insert(dao):
            attempts.append(dao.numero_liste)
            if len(attempts) == 1:
                raise DuplicateKeyError("numero_liste", dao.numero_liste)
            return await original(dao)

        monkeypatch.setattr(repo, "insert", flaky_insert)

        dao = await ctx.daos.create_dao(make_payload(), admin)
        await ctx.notifications.drain()

        assert len(attempts) == 2
        assert attempts[0] != attempts[1]
        assert dao.numero_liste == attempts[1]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, ctx, admin, monkeypatch):
        repo = await ctx.repositories.get_dao_repository()
        attempts = []

        async def always_taken(dao):
            attempts.append(dao.numero_liste)
            raise DuplicateKeyError("numero_liste", dao.numero_liste)

        monkeypatch.setattr(repo, "insert", always_taken)

        with pytest.raises(SequenceExhaustedError):
            await ctx.daos.create_dao(make_payload(), admin)
        assert len(attempts) == ctx.settings.create_max_attempts
        assert await repo.count() == 0

    @pytest.mark.asyncio
    async def test_other_duplicate_keys_are_not_retried(self, ctx, admin, monkeypatch):
        repo = await ctx.repositories.get_dao_repository()

        async def id_taken(dao):
            raise DuplicateKeyError("id", dao.id)

        monkeypatch.setattr(repo, "insert", id_taken)

        with pytest.raises(DuplicateKeyError):
            await ctx.daos.create_dao(make_payload(), admin)

    @pytest.mark.asyncio
    async def test_non_admin_is_refused(self, ctx, leader):
        with pytest.raises(PermissionDeniedError) as exc:
            await ctx.daos.create_dao(make_payload(), leader)
        assert exc.value.code == "ADMIN_REQUIRED"

    @pytest.mark.asyncio
    async def test_duplicate_task_ids_are_rejected(self, ctx, admin):
        payload = make_payload(tasks=[DaoTask(id=1, name="A"), DaoTask(id=1, name="B")])
        with pytest.raises(ValidationFailedError) as exc:
            await ctx.daos.create_dao(payload, admin)
        assert exc.value.code == "DUPLICATE_TASK_ID"


class TestReadDaos:
    @pytest.mark.asyncio
    async def test_page_size_is_clamped(self, ctx, admin):
        for _ in range(3):
            await ctx.daos.create_dao(make_payload(), admin)
        await ctx.notifications.drain()

        result = await ctx.daos.get_daos(DaoQuery(page=1, page_size=2))
        assert result.total == 3
        assert len(result.items) == 2

        ctx.settings.page_size_max = 1
        result = await ctx.daos.get_daos(DaoQuery(page=1, page_size=50))
        assert result.page_size == 1

    @pytest.mark.asyncio
    async def test_unknown_dao(self, ctx):
        with pytest.raises(NotFoundError) as exc:
            await ctx.daos.get_dao_by_id("missing")
        assert exc.value.code == "DAO_NOT_FOUND"


class TestUpdateDao:
    @pytest.mark.asyncio
    async def test_member_who_is_not_leader_is_refused(self, ctx, admin, member):
        dao = await ctx.daos.create_dao(make_payload(), admin)
        with pytest.raises(PermissionDeniedError) as exc:
            await ctx.daos.update_dao(dao.id, DaoUpdate(reference="X"), member)
        assert exc.value.code == "LEADER_REQUIRED"
        await ctx.notifications.drain()

    @pytest.mark.asyncio
    async def test_viewer_is_read_only(self, ctx, admin, viewer):
        dao = await ctx.daos.create_dao(make_payload(), admin)
        with pytest.raises(PermissionDeniedError) as exc:
            await ctx.daos.update_dao(dao.id, DaoUpdate(reference="X"), viewer)
        assert exc.value.code == "READ_ONLY"
        await ctx.notifications.drain()

    @pytest.mark.asyncio
    async def test_admin_not_leader_cannot_touch_progress(self, ctx, admin):
        dao = await ctx.daos.create_dao(make_payload(), admin)
        tasks = [t.model_copy(update={"progress": 40}) if t.id == 1 else t for t in dao.tasks]

        with pytest.raises(PermissionDeniedError) as exc:
            await ctx.daos.update_dao(dao.id, DaoUpdate(tasks=tasks), admin)
        assert exc.value.code == "ADMIN_NOT_LEADER_FORBIDDEN"
        await ctx.notifications.drain()

    @pytest.mark.asyncio
    async def test_leader_updates_fields_and_history(self, ctx, admin, leader):
        dao = await ctx.daos.create_dao(make_payload(), admin)
        updated = await ctx.daos.update_dao(dao.id, DaoUpdate(reference="<i>AO-99</i>"), leader)
        await ctx.notifications.drain()

        assert updated.reference == "AO-99"
        assert ctx.notifications.items[0].type == "dao_updated"
        assert ctx.daos.list_history()[0].event_type == "dao_updated"

    @pytest.mark.asyncio
    async def test_leader_change_is_notified_without_mirror(self, ctx, admin):
        dao = await ctx.daos.create_dao(make_payload(), admin)
        equipe = [
            TeamMember(id="leader", name="Léa Chef", role="membre_equipe"),
            TeamMember(id="member", name="Marc Membre", role="chef_equipe"),
        ]
        updated = await ctx.daos.update_dao(dao.id, DaoUpdate(equipe=equipe), admin)
        await ctx.notifications.drain()

        assert updated.leader.id == "member"
        leader_changes = [n for n in ctx.notifications.items if n.title == "Changement de chef d'équipe"]
        assert len(leader_changes) == 1
        assert leader_changes[0].skip_email_mirror is True
        assert "Nouveau Chef d'équipe : Marc Membre" in leader_changes[0].message
        assert ctx.daos.list_history()[0].event_type == "dao_team_update"

    @pytest.mark.asyncio
    async def test_task_changes_are_aggregated_until_validation(self, ctx, admin, leader):
        dao = await ctx.daos.create_dao(make_payload(), admin)

        await ctx.tasks.update_task(dao.id, 2, TaskUpdate(progress=50), leader)
        await ctx.tasks.update_task(dao.id, 1, TaskUpdate(is_applicable=False), leader)
        outcome = await ctx.daos.validate_changes(dao.id, leader)
        await ctx.notifications.drain()

        assert outcome.history_id is not None
        assert outcome.summary.lines[1:] == [
            "Tâche 1 : Applicabilité : Non",
            "Tâche 2 : Progression : 50%",
        ]
        assert ctx.notifications.items[0].title == "Mise à jour DAO"

        again = await ctx.daos.validate_changes(dao.id, leader)
        assert again.message == "Aucune modification"
        assert again.history_id is None


class TestDeleteDao:
    @pytest.mark.asyncio
    async def test_deleted_number_is_not_reused(self, ctx, admin):
        first = await ctx.daos.create_dao(make_payload(), admin)
        await ctx.daos.delete_dao(first.id, admin)
        second = await ctx.daos.create_dao(make_payload(), admin)
        await ctx.notifications.drain()

        assert second.numero_liste == format_numero(utcnow().year, 2)
        assert ctx.notifications.items[1].type == "dao_deleted"

    @pytest.mark.asyncio
    async def test_delete_last_created(self, ctx, admin):
        await ctx.daos.create_dao(make_payload(), admin)
        last = await ctx.daos.create_dao(make_payload(), admin)

        deleted = await ctx.daos.delete_last_created_dao(admin)
        await ctx.notifications.drain()

        assert deleted.id == last.id
        assert len(await ctx.daos.get_all_daos()) == 1

    @pytest.mark.asyncio
    async def test_delete_last_without_dao(self, ctx, admin):
        with pytest.raises(NotFoundError) as exc:
            await ctx.daos.delete_last_created_dao(admin)
        assert exc.value.code == "NO_DAO"

    @pytest.mark.asyncio
    async def test_delete_requires_admin(self, ctx, admin, leader):
        dao = await ctx.daos.create_dao(make_payload(), admin)
        with pytest.raises(PermissionDeniedError):
            await ctx.daos.delete_dao(dao.id, leader)
        await ctx.notifications.drain()

    @pytest.mark.asyncio
    async def test_verify_integrity_on_memory_backend(self, ctx, admin):
        await ctx.daos.create_dao(make_payload(), admin)
        result = await ctx.daos.verify_integrity(admin)
        await ctx.notifications.drain()

        assert result["integrity_check"] == "PASSÉ"
        assert result["backend"] == "memory"
        assert result["total_daos"] == 1
