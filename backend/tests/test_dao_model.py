# tests/test_dao_model.py
import datetime as dt

import pytest
from pydantic import ValidationError

from app.core.utils import sanitize_string
from app.models.dao import DaoTask, TeamMember, calculate_dao_progress, calculate_dao_status

from conftest import make_dao

NOW = dt.datetime(2025, 5, 1, 12, 0, tzinfo=dt.timezone.utc)


def test_progress_ignores_non_applicable_tasks_and_rounds_half_up():
    tasks = [
        DaoTask(id=1, name="a", progress=50),
        DaoTask(id=2, name="b", progress=None),
        DaoTask(id=3, name="c", progress=25),
        DaoTask(id=4, name="d", progress=90, is_applicable=False),
    ]
    # (50 + 0 + 25) / 3 = 25.0
    assert calculate_dao_progress(tasks) == 25
    assert calculate_dao_progress([DaoTask(id=1, name="a", progress=1), DaoTask(id=2, name="b", progress=2)]) == 2
    assert calculate_dao_progress([DaoTask(id=1, name="a", is_applicable=False)]) == 0


@pytest.mark.parametrize(
    "days, progress, expected",
    [
        (10, 100, "completed"),
        (10, 20, "safe"),
        (5, 20, "safe"),
        (4, 20, "default"),
        (3, 20, "urgent"),
        (-2, 20, "urgent"),
    ],
)
def test_status_from_deadline(days, progress, expected):
    assert calculate_dao_status(NOW + dt.timedelta(days=days), progress, now=NOW) == expected


def test_non_applicable_task_has_no_progress():
    assert DaoTask(id=1, name="a", progress=80, is_applicable=False).progress is None


def test_single_leader_per_team():
    with pytest.raises(ValidationError):
        make_dao(
            equipe=[
                TeamMember(id="a", name="A", role="chef_equipe"),
                TeamMember(id="b", name="B", role="chef_equipe"),
            ]
        )


def test_naive_dates_are_treated_as_utc():
    dao = make_dao(depot=dt.datetime(2025, 3, 1, 8, 0))
    assert dao.date_depot.tzinfo == dt.timezone.utc
    assert dao.is_leader("leader")
    assert not dao.is_leader("member")


def test_sanitize_string_strips_markup():
    assert sanitize_string("  <script>alert(1)</script><p>Objet <b>final</b></p> ") == "Objet final"
    assert sanitize_string("<style>p{}</style>ok") == "ok"
