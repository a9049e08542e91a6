# backend/app/services/history_store.py
# Journal quotidien (mémoire) des entrées d'historique DAO, interrogeable par jour ou par plage.

from __future__ import annotations

import datetime as dt

from app.core.utils import day_key, parse_day
from app.models.history import DaoHistoryEntry


class DaoHistoryStore:
    """Historique en mémoire, regroupé par jour UTC (`YYYY-MM-DD`).

    Description:
        Chaque jour conserve ses entrées de la plus récente à la plus ancienne,
        plafonnées à `max_per_day` (les plus anciennes sont évincées). L'état
        est local au processus et perdu au redémarrage.
    """

    def __init__(self, max_per_day: int = 1000):
        self.max_per_day = max_per_day
        self._days: dict[str, list[DaoHistoryEntry]] = {}

    def add(self, entry: DaoHistoryEntry) -> DaoHistoryEntry:
        bucket = self._days.setdefault(entry.created_at[:10], [])
        bucket.insert(0, entry)
        del bucket[self.max_per_day :]
        return entry

    def list(
        self,
        date: str | dt.date | None = None,
        date_from: str | dt.date | None = None,
        date_to: str | dt.date | None = None,
    ) -> list[DaoHistoryEntry]:
        """Liste les entrées d'historique.

        Description:
            - `date` : le contenu du jour tel quel (plus récent d'abord)
            - `date_from` / `date_to` : jours inclus dans la plage (bornes
              optionnelles, inclusives), triés par `created_at` décroissant
            - sans filtre : toutes les entrées, triées par `created_at` décroissant

        Args:
            date (str | date | None): Jour exact.
            date_from (str | date | None): Début de plage.
            date_to (str | date | None): Fin de plage.

        Returns:
            list[DaoHistoryEntry]: Entrées correspondantes.
        """
        if date is not None:
            return [*self._days.get(day_key_of(date), [])]

        start = parse_day(date_from) if date_from is not None else None
        end = parse_day(date_to) if date_to is not None else None
        selected: list[DaoHistoryEntry] = []
        for key, entries in self._days.items():
            day = parse_day(key)
            if start and day < start:
                continue
            if end and day > end:
                continue
            selected.extend(entries)
        selected.sort(key=lambda e: e.created_at, reverse=True)
        return selected

    def days(self) -> list[str]:
        return sorted(self._days, reverse=True)

    def count(self) -> int:
        return sum(len(v) for v in self._days.values())

    def clear(self) -> None:
        self._days.clear()


def day_key_of(value: str | dt.date) -> str:
    if isinstance(value, dt.datetime):
        return day_key(value)
    return parse_day(value).isoformat()
