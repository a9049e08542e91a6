# backend/app/core/utils.py
# Fonctions temporelles (UTC), clés de jour et nettoyage des saisies utilisateur.

import datetime as dt
import re
import uuid

_SCRIPT_RE = re.compile(r"<script[\s\S]*?>[\s\S]*?</script>", re.IGNORECASE)
_STYLE_RE = re.compile(r"<style[\s\S]*?>[\s\S]*?</style>", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")


def utcnow() -> dt.datetime:
    """Date/heure UTC (timezone-aware).

    Description:
        Retourne `datetime.now(timezone.utc)` avec timezone UTC attachée. Utilisé
        pour tous les horodatages persistés et les comparaisons.

    Returns:
        datetime.datetime: Timestamp UTC (aware).
    """
    return dt.datetime.now(dt.timezone.utc)


def utcnow_iso() -> str:
    """Horodatage ISO-8601 UTC à précision fixe (triable lexicographiquement)."""
    return isoformat_utc(utcnow())


def isoformat_utc(value: dt.datetime) -> str:
    """Formate un datetime en ISO-8601 UTC `YYYY-MM-DDTHH:MM:SS.mmmZ`.

    Description:
        Le format est constant (millisecondes, suffixe `Z`) afin que la comparaison
        de chaînes corresponde à l'ordre chronologique.

    Args:
        value (datetime): Datetime aware ou naïf (interprété comme UTC).

    Returns:
        str: Chaîne ISO triable.
    """
    value = ensure_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def ensure_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value.astimezone(dt.timezone.utc)


def day_key(value: dt.datetime | None = None) -> str:
    """Clé de jour `YYYY-MM-DD` (UTC) d'un instant."""
    return ensure_utc(value or utcnow()).strftime("%Y-%m-%d")


def parse_day(value: str | dt.date) -> dt.date:
    """Convertit `YYYY-MM-DD` (ou un ISO complet) en date."""
    if isinstance(value, dt.datetime):
        return ensure_utc(value).date()
    if isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(value[:10])


def start_of_day(value: dt.date) -> dt.datetime:
    return dt.datetime.combine(value, dt.time.min, tzinfo=dt.timezone.utc)


def end_of_day(value: dt.date) -> dt.datetime:
    return dt.datetime.combine(value, dt.time.max, tzinfo=dt.timezone.utc)


def new_id(prefix: str = "") -> str:
    """Identifiant unique, optionnellement préfixé (`hist_`, `comment_`...)."""
    return f"{prefix}{uuid.uuid4().hex}"


def sanitize_string(value: str) -> str:
    """Nettoie une chaîne utilisateur.

    Description:
        - retire les blocs <script> et <style>
        - retire les balises HTML restantes
        - trim

    Args:
        value (str): Saisie brute.

    Returns:
        str: Texte nettoyé.
    """
    value = _SCRIPT_RE.sub("", value)
    value = _STYLE_RE.sub("", value)
    value = _TAG_RE.sub("", value)
    return value.strip()
