# backend/app/db/mongodb.py
# Initialise le client MongoDB à la demande (connexion idempotente) et la ferme à l'arrêt.

from __future__ import annotations

import logging

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from app.core.settings import Settings, get_settings

logger = logging.getLogger(__name__)

client: AsyncIOMotorClient | None = None
db: AsyncIOMotorDatabase | None = None


async def connect_to_database(settings: Settings | None = None) -> AsyncIOMotorDatabase:
    """Ouvre (une seule fois) la connexion MongoDB.

    Description:
        Crée le client motor (`tz_aware=True`), vérifie la connexion par un `ping`
        puis mémorise la base. Un second appel réutilise la base déjà connectée.
        Si des appels concurrents tentent chacun la connexion, le premier ping
        réussi gagne et les clients perdants sont fermés. En cas d'échec seul le
        client de cet appel est fermé ; une connexion déjà mémorisée est conservée.

    Args:
        settings (Settings | None): Configuration (URI, base, timeouts).

    Returns:
        AsyncIOMotorDatabase: Base MongoDB connectée.

    Raises:
        pymongo.errors.PyMongoError: Connexion ou ping impossible.
    """
    global client, db
    if db is not None:
        return db

    settings = settings or get_settings()
    options: dict = {"tz_aware": True, "maxPoolSize": settings.mongodb_max_pool_size}
    timeout_ms = settings.mongodb_timeout_ms
    if timeout_ms is not None:
        options["serverSelectionTimeoutMS"] = timeout_ms
        options["connectTimeoutMS"] = timeout_ms

    candidate = AsyncIOMotorClient(settings.mongodb_uri, **options)
    try:
        await candidate.admin.command("ping")
    except Exception:
        candidate.close()
        raise

    if db is not None:
        # un appel concurrent a gagné pendant le ping
        candidate.close()
        return db

    client = candidate
    db = candidate[settings.mongodb_db]
    logger.info("MongoDB connecté (%s)", settings.mongodb_db)
    return db


def disconnect_from_database() -> None:
    global client, db
    if client is not None:
        client.close()
        logger.info("MongoDB déconnecté")
    client, db = None, None
