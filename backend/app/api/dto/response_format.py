# backend/app/api/dto/response_format.py
# Enveloppes de réponse communes : succès `{success, data, message}` et erreur `{success, error}`.

from typing import Any, Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class SuccessResponse(BaseModel, Generic[T]):
    """Format standardisé pour les réponses de succès sans ressource dédiée."""

    success: bool = True
    data: T | None = None
    message: str | None = None


class ErrorResponse(BaseModel):
    """Format standardisé pour les réponses d'erreur.

    Description:
        `error` contient toujours `code` et `message`, et `details` lorsque
        l'erreur en porte (ex. liste des champs invalides).
    """

    success: bool = False
    error: dict[str, Any]

    @classmethod
    def from_detail(cls, detail: str | dict[str, Any], code: str = "VALIDATION_ERROR") -> "ErrorResponse":
        """Construit la réponse à partir d'un message ou d'un dict `{code, message, details?}`."""
        if isinstance(detail, str):
            return cls(error={"code": code, "message": detail})
        return cls(error={"code": code, **detail})
