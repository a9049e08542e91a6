# backend/app/models/history.py
# Entrées d'historique DAO et résumé agrégé produit lors d'une validation.

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict

HistoryEventType = Literal["dao_created", "dao_updated", "dao_task_update", "dao_team_update"]


class DaoHistoryEntry(BaseModel):
    """Entrée immuable du journal quotidien.

    Attributes:
        id (str): Identifiant (`hist_...`).
        dao_id (str): DAO concerné.
        numero_liste (str): Numéro du DAO au moment de l'entrée.
        created_at (str): Horodatage ISO-8601 UTC (triable en chaîne).
        summary (str): Titre de l'entrée.
        lines (list[str]): Lignes détaillées, dans l'ordre d'affichage.
        event_type (str): Nature de l'évènement.
    """

    id: str
    dao_id: str
    numero_liste: str
    created_at: str
    summary: str
    lines: list[str]
    event_type: HistoryEventType = "dao_task_update"

    model_config = ConfigDict(frozen=True)


class DaoAggregatedSummary(BaseModel):
    """Résumé des changements en attente d'un DAO, prêt pour notification."""

    dao_id: str
    numero_liste: str
    title: str
    message: str
    lines: list[str]
    created_at: str

    model_config = ConfigDict(frozen=True)


class AggregationResult(BaseModel):
    """Résultat d'un flush : le résumé et l'entrée d'historique stockée."""

    summary: DaoAggregatedSummary
    history: DaoHistoryEntry


class ValidationOutcome(BaseModel):
    """Réponse d'une validation : résumé flushé, ou « Aucune modification »."""

    ok: bool = True
    message: str | None = None
    summary: DaoAggregatedSummary | None = None
    history_id: str | None = None
