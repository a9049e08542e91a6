# tests/test_task_comment_services.py
import pytest
import pytest_asyncio

from app.core.exceptions import NotFoundError, PermissionDeniedError, ValidationFailedError
from app.models.comment import CommentCreate, CommentUpdate
from app.models.dao import TaskCreate, TaskRename, TaskReorder, TaskUpdate

from conftest import make_dao


@pytest_asyncio.fixture
async def dao(ctx):
    repo = await ctx.repositories.get_dao_repository()
    return await repo.insert(make_dao())


class TestTaskService:
    @pytest.mark.asyncio
    async def test_add_task_uses_next_id(self, ctx, dao, admin):
        task = await ctx.tasks.add_task(dao.id, TaskCreate(name="Visite de site", progress=30, is_applicable=False), admin)

        assert task.id == 4
        assert task.progress is None
        stored = await ctx.daos.get_dao_by_id(dao.id)
        assert [t.id for t in stored.tasks] == [1, 2, 3, 4]
        assert ctx.daos.list_history()[0].summary == "Ajout d'une tâche"

    @pytest.mark.asyncio
    async def test_add_task_requires_admin(self, ctx, dao, leader):
        with pytest.raises(PermissionDeniedError):
            await ctx.tasks.add_task(dao.id, TaskCreate(name="X"), leader)

    @pytest.mark.asyncio
    async def test_rename_keeps_old_name_in_history(self, ctx, dao, admin):
        renamed = await ctx.tasks.rename_task(dao.id, 2, TaskRename(name="Caution bancaire"), admin)

        assert renamed.name == "Caution bancaire"
        entry = ctx.daos.list_history()[0]
        assert "Ancien nom : Tâche 2" in entry.lines
        assert "Nouveau nom : Caution bancaire" in entry.lines

    @pytest.mark.asyncio
    async def test_rename_unknown_task(self, ctx, dao, admin):
        with pytest.raises(NotFoundError) as exc:
            await ctx.tasks.rename_task(dao.id, 99, TaskRename(name="X"), admin)
        assert exc.value.code == "TASK_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_update_task_records_only_changed_fields(self, ctx, dao, leader):
        updated_dao, task = await ctx.tasks.update_task(dao.id, 3, TaskUpdate(progress=70), leader)
        await ctx.notifications.drain()

        assert task.progress == 70
        assert task.last_updated_by == "leader"
        assert updated_dao.find_task(3).progress == 70
        assert ctx.aggregator.has_pending(dao.id)
        assert ctx.aggregator.build_summary(updated_dao).lines[1] == "Tâche 3 : Progression : 70%"
        assert ctx.notifications.items[0].type == "task_notification"

    @pytest.mark.asyncio
    async def test_update_without_change_records_nothing(self, ctx, dao, leader):
        await ctx.tasks.update_task(dao.id, 1, TaskUpdate(), leader)
        assert ctx.aggregator.has_pending(dao.id) is False
        assert ctx.notifications.items == []

    @pytest.mark.asyncio
    async def test_admin_not_leader_may_comment_but_not_progress(self, ctx, dao, admin):
        with pytest.raises(PermissionDeniedError) as exc:
            await ctx.tasks.update_task(dao.id, 1, TaskUpdate(progress=10), admin)
        assert exc.value.code == "ADMIN_NOT_LEADER_FORBIDDEN"

        _, task = await ctx.tasks.update_task(dao.id, 1, TaskUpdate(comment="Relancer le fournisseur"), admin)
        await ctx.notifications.drain()
        assert task.comment == "Relancer le fournisseur"

    @pytest.mark.asyncio
    async def test_admin_not_leader_null_fields_are_not_restricted(self, ctx, dao, admin):
        payload = TaskUpdate.model_validate({"is_applicable": None, "assigned_to": None, "comment": "Vu"})

        _, task = await ctx.tasks.update_task(dao.id, 1, payload, admin)
        await ctx.notifications.drain()

        assert task.comment == "Vu"
        assert task.is_applicable is True

        with pytest.raises(PermissionDeniedError) as exc:
            await ctx.tasks.update_task(dao.id, 1, TaskUpdate.model_validate({"progress": None}), admin)
        assert exc.value.code == "ADMIN_NOT_LEADER_FORBIDDEN"

    @pytest.mark.asyncio
    async def test_member_cannot_update_task(self, ctx, dao, member):
        with pytest.raises(PermissionDeniedError) as exc:
            await ctx.tasks.update_task(dao.id, 1, TaskUpdate(comment="x"), member)
        assert exc.value.code == "LEADER_REQUIRED"

    @pytest.mark.asyncio
    async def test_reorder_requires_complete_unique_list(self, ctx, dao, leader):
        reordered = await ctx.tasks.reorder_tasks(dao.id, TaskReorder(task_ids=[3, 1, 2]), leader)
        assert [t.id for t in reordered.tasks] == [3, 1, 2]

        with pytest.raises(ValidationFailedError) as exc:
            await ctx.tasks.reorder_tasks(dao.id, TaskReorder(task_ids=[1, 2, 9]), leader)
        assert exc.value.code == "INVALID_TASK_IDS"

        with pytest.raises(ValidationFailedError) as exc:
            await ctx.tasks.reorder_tasks(dao.id, TaskReorder(task_ids=[1, 1, 2]), leader)
        assert exc.value.code == "INVALID_TASK_IDS"

        with pytest.raises(ValidationFailedError) as exc:
            await ctx.tasks.reorder_tasks(dao.id, TaskReorder(task_ids=[1, 2]), leader)
        assert exc.value.code == "INCOMPLETE_TASK_LIST"

    @pytest.mark.asyncio
    async def test_delete_task_is_disabled(self, ctx, dao, admin):
        with pytest.raises(PermissionDeniedError) as exc:
            await ctx.tasks.delete_task(dao.id, 1, admin)
        assert exc.value.code == "TASK_DELETE_DISABLED"


class TestCommentService:
    @pytest.mark.asyncio
    async def test_add_comment_feeds_aggregator(self, ctx, dao, member):
        comment = await ctx.comments.add_comment(
            CommentCreate(dao_id=dao.id, task_id=2, content="<b>Pièces</b> reçues"), member
        )
        await ctx.notifications.drain()

        assert comment.content == "Pièces reçues"
        assert comment.user_name == "Marc Membre"
        assert ctx.aggregator.build_summary(dao).lines[1] == 'Tâche 2 : Commentaire: "Pièces reçues"'
        assert [c.id for c in await ctx.comments.get_task_comments(dao.id, 2)] == [comment.id]

    @pytest.mark.asyncio
    async def test_comment_on_unknown_task(self, ctx, dao, member):
        with pytest.raises(NotFoundError):
            await ctx.comments.add_comment(CommentCreate(dao_id=dao.id, task_id=42, content="x"), member)

    @pytest.mark.asyncio
    async def test_viewer_cannot_comment(self, ctx, dao, viewer):
        with pytest.raises(PermissionDeniedError) as exc:
            await ctx.comments.add_comment(CommentCreate(dao_id=dao.id, task_id=1, content="x"), viewer)
        assert exc.value.code == "READ_ONLY"

    @pytest.mark.asyncio
    async def test_only_author_updates(self, ctx, dao, member, admin):
        comment = await ctx.comments.add_comment(CommentCreate(dao_id=dao.id, task_id=1, content="v1"), member)

        with pytest.raises(PermissionDeniedError) as exc:
            await ctx.comments.update_comment(comment.id, CommentUpdate(content="v2"), admin)
        assert exc.value.code == "NOT_COMMENT_AUTHOR"

        updated = await ctx.comments.update_comment(comment.id, CommentUpdate(content="v2"), member)
        await ctx.notifications.drain()
        assert updated.content == "v2"

    @pytest.mark.asyncio
    async def test_author_or_admin_deletes(self, ctx, dao, member, leader, admin):
        first = await ctx.comments.add_comment(CommentCreate(dao_id=dao.id, task_id=1, content="a"), member)
        second = await ctx.comments.add_comment(CommentCreate(dao_id=dao.id, task_id=1, content="b"), member)

        with pytest.raises(PermissionDeniedError):
            await ctx.comments.delete_comment(first.id, leader)

        await ctx.comments.delete_comment(first.id, member)
        await ctx.comments.delete_comment(second.id, admin)
        await ctx.notifications.drain()

        assert await ctx.comments.get_dao_comments(dao.id) == []
        with pytest.raises(NotFoundError) as exc:
            await ctx.comments.get_comment_by_id(first.id)
        assert exc.value.code == "COMMENT_NOT_FOUND"
