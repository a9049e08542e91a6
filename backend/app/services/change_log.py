# backend/app/services/change_log.py
# Agrégation des changements de tâches par DAO jusqu'à validation, puis écriture dans l'historique.

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass, field
from typing import Any, Iterable

from app.core.utils import new_id, utcnow_iso
from app.models.dao import Dao, DaoTask
from app.models.history import AggregationResult, DaoAggregatedSummary, DaoHistoryEntry, HistoryEventType
from app.services.history_store import DaoHistoryStore

logger = logging.getLogger(__name__)

AGGREGATED_TITLE = "Mise à jour DAO"
TRUNCATION_MARKER = "(...)"
TRACKED_FIELDS = ("is_applicable", "progress", "comment")


@dataclass
class _PendingByDao:
    dao_id: str
    numero_liste: str
    tasks: dict[int, dict[str, Any]] = field(default_factory=dict)
    last_touched_at: str = field(default_factory=utcnow_iso)


def _task_line(task_id: int, snapshot: dict[str, Any]) -> str:
    parts = [f"Tâche {task_id} :"]
    applicable = snapshot.get("is_applicable")
    if isinstance(applicable, bool):
        parts.append(f"Applicabilité : {'Oui' if applicable else 'Non'}")
    progress = snapshot.get("progress")
    if applicable is not False and isinstance(progress, int) and not isinstance(progress, bool):
        parts.append(f"Progression : {progress}%")
    comment = (snapshot.get("comment") or "").strip()
    if comment:
        parts.append(f'Commentaire: "{comment}"')
    return " ".join(parts)


class DaoChangeAggregator:
    """Accumulateur des changements en attente, par DAO et par tâche.

    Description:
        États par DAO : inactif (aucune entrée) → en accumulation (au moins
        une tâche modifiée) → retour à inactif lors du flush
        (`aggregate_and_clear`). Pour une tâche, seuls les champs touchés depuis
        le dernier flush sont retenus (dernière valeur gagnante). L'état est
        local au processus : plusieurs instances de l'API agrègent chacune de
        leur côté.

    Args:
        history (DaoHistoryStore): Journal quotidien alimenté par les flushs.
        max_lines (int): Nombre maximal de lignes de tâches par résumé.
    """

    def __init__(self, history: DaoHistoryStore, max_lines: int = 6):
        self.history = history
        self.max_lines = max_lines
        self._pending: dict[str, _PendingByDao] = {}

    def _ensure_pending(self, dao: Dao) -> _PendingByDao:
        pending = self._pending.get(dao.id)
        if pending is None:
            pending = _PendingByDao(dao_id=dao.id, numero_liste=dao.numero_liste)
            self._pending[dao.id] = pending
        pending.numero_liste = dao.numero_liste
        pending.last_touched_at = utcnow_iso()
        return pending

    def record_task_change(self, dao: Dao, task: DaoTask, changed: Iterable[str] | None = None) -> None:
        """Enregistre l'état courant des champs touchés d'une tâche.

        Args:
            dao (Dao): DAO concerné.
            task (DaoTask): Tâche après modification.
            changed (Iterable[str] | None): Champs modifiés parmi
                `is_applicable`, `progress`, `comment` (tous par défaut).
        """
        fields = TRACKED_FIELDS if changed is None else tuple(f for f in TRACKED_FIELDS if f in set(changed))
        pending = self._ensure_pending(dao)
        if not fields:
            return
        snapshot = pending.tasks.setdefault(task.id, {})
        for name in fields:
            if name == "progress":
                snapshot["progress"] = task.progress if task.is_applicable else None
            else:
                snapshot[name] = getattr(task, name)
        # L'applicabilité courante conditionne l'affichage de la progression
        if "progress" in snapshot and not task.is_applicable:
            snapshot["progress"] = None

    def record_leader_change(self, dao: Dao, old_leader: str | None, new_leader: str | None) -> None:
        # Pas de ligne : le changement de chef est notifié immédiatement par l'appelant
        self._ensure_pending(dao)
        logger.info("Changement de chef pour %s : %s -> %s", dao.numero_liste, old_leader, new_leader)

    def has_pending(self, dao_id: str) -> bool:
        pending = self._pending.get(dao_id)
        return pending is not None and bool(pending.tasks)

    def clear_pending(self, dao_id: str) -> None:
        self._pending.pop(dao_id, None)

    def build_summary(self, dao: Dao, max_lines: int | None = None) -> DaoAggregatedSummary | None:
        """Construit le résumé des changements en attente (sans rien vider).

        Returns:
            DaoAggregatedSummary | None: None si aucune tâche en attente.
        """
        pending = self._pending.get(dao.id)
        if pending is None or not pending.tasks:
            return None
        limit = self.max_lines if max_lines is None else max_lines

        task_ids = sorted(pending.tasks)
        lines = [f"Numéro de liste : {dao.numero_liste}"]
        lines.extend(_task_line(task_id, pending.tasks[task_id]) for task_id in task_ids[:limit])
        if len(task_ids) > limit:
            lines.append(TRUNCATION_MARKER)

        return DaoAggregatedSummary(
            dao_id=dao.id,
            numero_liste=dao.numero_liste,
            title=AGGREGATED_TITLE,
            message="\n".join(lines),
            lines=lines,
            created_at=utcnow_iso(),
        )

    def aggregate_and_clear(self, dao: Dao, max_lines: int | None = None) -> AggregationResult | None:
        """Vide les changements en attente d'un DAO dans l'historique.

        Description:
            Retourne None s'il n'y a rien à agréger (à distinguer d'un résumé
            vide : l'appelant ne doit alors rien diffuser). Sinon le résumé est
            enregistré dans le jour UTC du flush et l'entrée en attente est
            supprimée.

        Args:
            dao (Dao): DAO à valider.
            max_lines (int | None): Plafond de lignes de tâches.

        Returns:
            AggregationResult | None: Résumé et entrée d'historique stockée.
        """
        summary = self.build_summary(dao, max_lines)
        if summary is None:
            return None
        entry = DaoHistoryEntry(
            id=new_id("hist_"),
            dao_id=summary.dao_id,
            numero_liste=summary.numero_liste,
            created_at=summary.created_at,
            summary=summary.title,
            lines=summary.lines,
            event_type="dao_task_update",
        )
        self.history.add(entry)
        self.clear_pending(dao.id)
        return AggregationResult(summary=summary, history=entry)

    def record_event(
        self,
        dao: Dao,
        summary: str,
        lines: list[str],
        event_type: HistoryEventType = "dao_updated",
    ) -> DaoHistoryEntry:
        """Ajoute directement une entrée d'historique (création, mise à jour...)."""
        entry = DaoHistoryEntry(
            id=new_id("hist_"),
            dao_id=dao.id,
            numero_liste=dao.numero_liste,
            created_at=utcnow_iso(),
            summary=summary,
            lines=list(lines),
            event_type=event_type,
        )
        return self.history.add(entry)

    def list_history(
        self,
        date: str | dt.date | None = None,
        date_from: str | dt.date | None = None,
        date_to: str | dt.date | None = None,
    ) -> list[DaoHistoryEntry]:
        return self.history.list(date=date, date_from=date_from, date_to=date_to)

    def clear_all_pending(self) -> None:
        self._pending.clear()
