# backend/app/core/security.py
# Identité de l'appelant (en-tête `X-User-Id` posé par la passerelle) et dépendances FastAPI associées.

from typing import Annotated

from fastapi import Depends, Header, HTTPException, status

from app.core.context import AppContext, get_context
from app.models.user import User

Context = Annotated[AppContext, Depends(get_context)]


async def get_current_user(
    ctx: Context,
    x_user_id: Annotated[str | None, Header()] = None,
) -> User:
    """Dépendance FastAPI: charge l'utilisateur courant.

    Description:
        - L'authentification est assurée en amont ; l'id utilisateur arrive
          dans l'en-tête `X-User-Id`, que la passerelle doit écraser ou supprimer
          sur toute requête venant de l'extérieur (il n'est jamais vérifié ici)
        - L'utilisateur est chargé depuis le dépôt actif
        - Lève 401 si l'en-tête manque ou si l'utilisateur est inconnu/désactivé

    Args:
        ctx (AppContext): Contexte applicatif.
        x_user_id (str | None): Identifiant transmis par la passerelle.

    Returns:
        User: Utilisateur courant.

    Raises:
        HTTPException: 401 si identité absente ou invalide.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    if not x_user_id:
        raise credentials_exception

    user = await ctx.users.find_user(x_user_id.strip())
    if user is None or not user.is_active:
        raise credentials_exception
    return user


def require_admin(current_user: Annotated[User, Depends(get_current_user)]) -> User:
    if current_user.role != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin only")
    return current_user


# Type aliases pour faciliter l'usage
CurrentUser = Annotated[User, Depends(get_current_user)]
AdminUser = Annotated[User, Depends(require_admin)]
