# backend/app/models/user.py
# Schémas utilisateur : document persistant, payloads d'administration et sortie publique.

from __future__ import annotations

import datetime as dt
from typing import Literal

from pydantic import BaseModel, EmailStr, Field

from app.core.utils import utcnow

UserRole = Literal["admin", "user", "viewer"]


class UserBase(BaseModel):
    """Champs communs utilisateur.

    Attributes:
        name (str): Nom affiché.
        email (EmailStr): Email unique (insensible à la casse).
        role (str): Rôle (`admin`, `user`, `viewer`).
    """

    name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    role: UserRole = "user"


class User(UserBase):
    """Document utilisateur.

    Attributes:
        id (str): Identifiant.
        created_at (datetime): Création (UTC).
        last_login (datetime | None): Dernière connexion.
        is_active (bool): Compte actif (désactivation logique).
        is_super_admin (bool): Super administrateur.
    """

    id: str
    created_at: dt.datetime = Field(default_factory=utcnow)
    last_login: dt.datetime | None = None
    is_active: bool = True
    is_super_admin: bool = False

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


class UserCreate(UserBase):
    """Payload de création (admin)."""

    id: str | None = None
    is_super_admin: bool = False


class UserRoleUpdate(BaseModel):
    role: UserRole


class UserOut(BaseModel):
    """Sortie publique utilisateur."""

    id: str
    name: str
    email: EmailStr
    role: UserRole
    is_active: bool = True
