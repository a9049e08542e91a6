# backend/app/core/exceptions.py
# Exceptions métier, converties en réponses HTTP par les gestionnaires globaux.

from __future__ import annotations

from typing import Any


class DaoTrackError(Exception):
    """Erreur métier de base (code + statut HTTP associé)."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, *, code: str | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details


class NotFoundError(DaoTrackError):
    code = "NOT_FOUND"
    status_code = 404


class PermissionDeniedError(DaoTrackError):
    code = "FORBIDDEN"
    status_code = 403


class ValidationFailedError(DaoTrackError):
    code = "VALIDATION_ERROR"
    status_code = 400


class DuplicateKeyError(DaoTrackError):
    """Violation d'unicité levée par un dépôt (mémoire ou Mongo).

    Attributes:
        key (str): Champ en conflit (`id`, `numero_liste`, `email`...).
        value (Any): Valeur en conflit.
    """

    code = "DUPLICATE_KEY"
    status_code = 409

    def __init__(self, key: str, value: Any):
        super().__init__(f"Duplicate value for {key}: {value!r}")
        self.key = key
        self.value = value


class SequenceExhaustedError(DaoTrackError):
    code = "DUPLICATE_NUMBER"
    status_code = 409


class StorageUnavailableError(DaoTrackError):
    code = "STORAGE_UNAVAILABLE"
    status_code = 503
