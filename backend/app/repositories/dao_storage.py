# backend/app/repositories/dao_storage.py
# Stockage mémoire indexé des DAO : liste ordonnée + index id→position et autorité→positions.

from __future__ import annotations

import logging
from typing import Iterator

from pydantic import BaseModel

from app.models.dao import Dao

logger = logging.getLogger(__name__)


class IntegrityReport(BaseModel):
    """Résultat d'une vérification d'intégrité du stockage mémoire."""

    ok: bool
    duplicate_ids: list[str] = []
    index_mismatches: list[str] = []
    repaired: bool = False
    total: int = 0


class DaoStorage:
    """Liste de DAO avec index secondaires.

    Description:
        - `_items` : ordre d'insertion
        - `_id_index` : id → position dans `_items`
        - `_autorite_index` : autorité contractante → positions
        Les index sont reconstruits après toute mutation structurelle (ajout,
        suppression) ; une mise à jour en place ne change pas les positions mais
        reconstruit l'index d'autorité si ce champ a changé.
    """

    def __init__(self) -> None:
        self._items: list[Dao] = []
        self._id_index: dict[str, int] = {}
        self._autorite_index: dict[str, list[int]] = {}

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Dao]:
        return iter(list(self._items))

    def all(self) -> list[Dao]:
        return list(self._items)

    def _rebuild_indexes(self) -> None:
        self._id_index = {}
        self._autorite_index = {}
        for position, dao in enumerate(self._items):
            self._id_index[dao.id] = position
            self._autorite_index.setdefault(dao.autorite_contractante, []).append(position)

    def find_index_by_id(self, dao_id: str) -> int:
        """Position d'un DAO dans la liste, -1 si absent."""
        return self._id_index.get(dao_id, -1)

    def get(self, dao_id: str) -> Dao | None:
        position = self.find_index_by_id(dao_id)
        return self._items[position] if position >= 0 else None

    def find_by_autorite(self, autorite: str) -> list[Dao]:
        return [self._items[i] for i in self._autorite_index.get(autorite, [])]

    def add(self, dao: Dao) -> Dao:
        self._items.append(dao)
        self._rebuild_indexes()
        return dao

    def extend(self, daos: list[Dao]) -> None:
        self._items.extend(daos)
        self._rebuild_indexes()

    def update_at_index(self, position: int, dao: Dao) -> Dao:
        previous = self._items[position]
        self._items[position] = dao
        if previous.id != dao.id or previous.autorite_contractante != dao.autorite_contractante:
            self._rebuild_indexes()
        return dao

    def delete_by_id(self, dao_id: str) -> bool:
        position = self.find_index_by_id(dao_id)
        if position < 0:
            return False
        del self._items[position]
        self._rebuild_indexes()
        return True

    def clear_all(self) -> None:
        self._items = []
        self._rebuild_indexes()

    def verify_integrity(self) -> IntegrityReport:
        """Vérifie (et répare) la cohérence entre la liste et ses index.

        Description:
            Détecte les ids en double dans la liste et les entrées d'index qui ne
            pointent pas vers le bon élément. En cas d'anomalie, les doublons
            sont retirés (première occurrence conservée) puis les index sont
            reconstruits. Aucune exception n'est levée.

        Returns:
            IntegrityReport: Anomalies détectées et indicateur de réparation.
        """
        seen: set[str] = set()
        duplicates: list[str] = []
        for dao in self._items:
            if dao.id in seen:
                duplicates.append(dao.id)
            seen.add(dao.id)

        mismatches: list[str] = []
        for dao_id, position in self._id_index.items():
            if position >= len(self._items) or self._items[position].id != dao_id:
                mismatches.append(dao_id)
        for position, dao in enumerate(self._items):
            if dao.id not in self._id_index and dao.id not in mismatches:
                mismatches.append(dao.id)

        ok = not duplicates and not mismatches
        if not ok:
            logger.warning(
                "Intégrité DAO : %d doublon(s), %d incohérence(s) d'index, réparation",
                len(duplicates),
                len(mismatches),
            )
            unique: list[Dao] = []
            kept: set[str] = set()
            for dao in self._items:
                if dao.id not in kept:
                    unique.append(dao)
                    kept.add(dao.id)
            self._items = unique
            self._rebuild_indexes()

        return IntegrityReport(
            ok=ok,
            duplicate_ids=duplicates,
            index_mismatches=mismatches,
            repaired=not ok,
            total=len(self._items),
        )
