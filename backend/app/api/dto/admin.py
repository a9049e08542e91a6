# backend/app/api/dto/admin.py
# DTO des routes d'administration (réinitialisation, file d'emails).

from pydantic import BaseModel


class ResetResponse(BaseModel):
    """Volumes supprimés par une réinitialisation."""

    daos: int
    history: int
    notifications: int
    mail_jobs: int


class RequeueResponse(BaseModel):
    job_id: str
    requeued: bool = True
