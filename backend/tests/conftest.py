# tests/conftest.py
import datetime as dt

import pytest

from app.core.context import AppContext
from app.core.settings import Settings
from app.models.dao import Dao, DaoCreate, DaoTask, TeamMember
from app.models.user import User
from app.repositories.selector import RepositoryProvider


async def _never_connect(settings):
    raise AssertionError("no connection expected")


def make_settings(**overrides) -> Settings:
    values = {"log_to_files": False, "use_mongo": False}
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_dao(
    dao_id: str = "dao_1",
    numero: str = "DAO-2025-001",
    autorite: str = "Mairie de Lyon",
    depot: dt.datetime | None = None,
    created_at: dt.datetime | None = None,
    tasks: list[DaoTask] | None = None,
    **extra,
) -> Dao:
    created = created_at or dt.datetime(2025, 1, 1, tzinfo=dt.timezone.utc)
    return Dao(
        id=dao_id,
        numero_liste=numero,
        objet_dossier=extra.pop("objet_dossier", "Construction d'une école"),
        reference=extra.pop("reference", "REF-001"),
        autorite_contractante=autorite,
        date_depot=depot or dt.datetime(2025, 3, 15, tzinfo=dt.timezone.utc),
        equipe=extra.pop(
            "equipe",
            [
                TeamMember(id="leader", name="Léa Chef", role="chef_equipe"),
                TeamMember(id="member", name="Marc Membre"),
            ],
        ),
        tasks=tasks if tasks is not None else [DaoTask(id=i, name=f"Tâche {i}") for i in (1, 2, 3)],
        created_at=created,
        updated_at=created,
        **extra,
    )


def make_payload(**overrides) -> DaoCreate:
    values = {
        "objet_dossier": "Réhabilitation du pont",
        "reference": "AO-2025-17",
        "autorite_contractante": "Région Nord",
        "date_depot": dt.datetime(2025, 6, 30, tzinfo=dt.timezone.utc),
        "equipe": [
            TeamMember(id="leader", name="Léa Chef", role="chef_equipe"),
            TeamMember(id="member", name="Marc Membre"),
        ],
    }
    values.update(overrides)
    return DaoCreate(**values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def admin() -> User:
    return User(id="admin", name="Administrateur", email="admin@dao-tracker.fr", role="admin")


@pytest.fixture
def leader() -> User:
    return User(id="leader", name="Léa Chef", email="lea@dao-tracker.fr", role="user")


@pytest.fixture
def member() -> User:
    return User(id="member", name="Marc Membre", email="marc@dao-tracker.fr", role="user")


@pytest.fixture
def viewer() -> User:
    return User(id="viewer", name="Vera Lecture", email="vera@dao-tracker.fr", role="viewer")


@pytest.fixture
def sent_mails() -> list:
    return []


@pytest.fixture
def ctx(settings, sent_mails) -> AppContext:
    async def sender(to, subject, body):
        sent_mails.append((list(to), subject, body))

    provider = RepositoryProvider(settings, connect=_never_connect)
    return AppContext(settings, repositories=provider, mail_sender=sender)
