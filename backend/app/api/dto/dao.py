# backend/app/api/dto/dao.py
# DTO de sortie des routes DAO, tâches, commentaires et notifications.

from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, Field, computed_field

from app.models.dao import Dao, DaoStatus, DaoTask, calculate_dao_progress, calculate_dao_status
from app.models.history import DaoHistoryEntry


class DaoOut(Dao):
    """DAO enrichi de sa progression globale et de son statut d'échéance (calculés, non stockés)."""

    @computed_field
    @property
    def progress(self) -> int:
        return calculate_dao_progress(self.tasks)

    @computed_field
    @property
    def status(self) -> DaoStatus:
        return calculate_dao_status(self.date_depot, self.progress)


class DaoListResponse(BaseModel):
    items: list[DaoOut]
    total: int
    page: int
    page_size: int


class NextNumberResponse(BaseModel):
    next_number: str


class HistoryResponse(BaseModel):
    items: list[DaoHistoryEntry] = Field(default_factory=list)


class LastDaoResponse(BaseModel):
    id: str
    numero_liste: str
    created_at: dt.datetime


class DeletedDaoResponse(BaseModel):
    deleted_id: str
    numero_liste: str


class TaskUpdateResponse(BaseModel):
    dao: DaoOut
    task: DaoTask


class ReadAllResponse(BaseModel):
    updated: int
