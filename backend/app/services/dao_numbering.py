# backend/app/services/dao_numbering.py
# Génération des numéros de liste `DAO-<année>-<seq>` avec marque haute par année.

from __future__ import annotations

import logging
import re
from typing import Awaitable, Callable

from app.core.utils import utcnow
from app.models.dao import NUMERO_PREFIX
from app.repositories.base import DaoRepository

logger = logging.getLogger(__name__)

_NUMERO_RE = re.compile(rf"^{NUMERO_PREFIX}-(\d{{4}})-(\d+)$")


def format_numero(year: int, seq: int) -> str:
    return f"{NUMERO_PREFIX}-{year}-{seq:03d}"


def parse_numero(numero: str) -> tuple[int, int] | None:
    """Extrait `(année, séquence)` d'un numéro de liste, None si format inconnu."""
    match = _NUMERO_RE.match(numero or "")
    if not match:
        return None
    return int(match.group(1)), int(match.group(2))


class DaoNumberGenerator:
    """Générateur de numéros de liste, monotone par année au sein du processus.

    Description:
        La marque haute d'une année est le maximum entre :
        - `_observed[année]` : plus grande séquence présente en base, recalculée
          après suppression (peut donc baisser)
        - `_issued[année]` : dernière séquence émise par ce processus, jamais
          décrémentée
        Un numéro émis puis supprimé n'est donc jamais réattribué tant que le
        processus vit.

    Args:
        get_repository (Callable): Fournit le dépôt DAO actif.
    """

    def __init__(self, get_repository: Callable[[], Awaitable[DaoRepository]]):
        self._get_repository = get_repository
        self._issued: dict[int, int] = {}
        self._observed: dict[int, int] = {}

    async def _scan(self, year: int) -> int:
        repo = await self._get_repository()
        highest = 0
        for dao in await repo.find_by_numero_year(year):
            parsed = parse_numero(dao.numero_liste)
            if parsed and parsed[0] == year:
                highest = max(highest, parsed[1])
        self._observed[year] = highest
        return highest

    def high_water_mark(self, year: int) -> int:
        return max(self._observed.get(year, 0), self._issued.get(year, 0))

    async def peek_next(self, year: int | None = None) -> str:
        """Prochain numéro qui serait émis, sans avancer la marque."""
        year = year or utcnow().year
        await self._scan(year)
        return format_numero(year, self.high_water_mark(year) + 1)

    async def generate_next(self, year: int | None = None) -> str:
        """Émet le prochain numéro et avance la marque de l'année.

        Args:
            year (int | None): Année (année UTC courante par défaut).

        Returns:
            str: Numéro `DAO-<année>-<seq:03d>`.
        """
        year = year or utcnow().year
        await self._scan(year)
        seq = self.high_water_mark(year) + 1
        self._issued[year] = seq
        return format_numero(year, seq)

    async def on_deleted(self, numero: str) -> None:
        """Recalcule la marque observée de l'année du numéro supprimé."""
        parsed = parse_numero(numero)
        if parsed is None:
            return
        year, _ = parsed
        before = self._observed.get(year, 0)
        after = await self._scan(year)
        if after != before:
            logger.info("Marque observée %s : %d -> %d", year, before, after)

    def reset(self) -> None:
        self._issued.clear()
        self._observed.clear()
