"""Configuration du système de logging centralisé."""

import json
import logging
import logging.handlers
import os
import glob
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Dict, Optional

from app.core.settings import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


class CustomJSONEncoder(json.JSONEncoder):
    """Encodeur JSON personnalisé pour gérer datetime et ensembles."""

    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        return super().default(obj)


class AuditLogger:
    """Journal d'audit JSON (un fichier tableau par jour)."""

    def __init__(self, logs_dir: str | None = "logs"):
        self.logs_dir = Path(logs_dir) if logs_dir else None
        self._logger = logging.getLogger("app.audit")

    def log_audit(
        self,
        action: str,
        user_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Enregistre une action d'audit.

        Description:
            Écrit une ligne INFO sur `app.audit` puis, si un dossier de logs est
            configuré, ajoute l'entrée au fichier `YYYY-MM-DD-audit.json` en
            maintenant un tableau JSON valide.

        Args:
            action (str): Action auditée (ex. "CREATE_DAO").
            user_id (str | None): Auteur de l'action.
            data (dict | None): Contexte additionnel.
        """
        self._logger.info("%s user=%s", action, user_id or "-")
        if self.logs_dir is None:
            return

        self.logs_dir.mkdir(parents=True, exist_ok=True)
        json_file = self.logs_dir / f"{datetime.now().strftime('%Y-%m-%d')}-audit.json"
        entry = {
            "datetime": datetime.now().isoformat(),
            "action": action,
            "user_id": user_id,
            "data": data or {},
        }

        try:
            if json_file.exists():
                with open(json_file, "r", encoding="utf-8") as f:
                    content = f.read().rstrip()
                # Retirer le crochet fermant final puis ajouter l'entrée
                if content.endswith("]"):
                    content = content[:-1].rstrip()
                if content.endswith("}"):
                    content += ","
                with open(json_file, "w", encoding="utf-8") as f:
                    f.write(content)
                    f.write(json.dumps(entry, cls=CustomJSONEncoder))
                    f.write("]")
            else:
                with open(json_file, "w", encoding="utf-8") as f:
                    f.write("[")
                    f.write(json.dumps(entry, cls=CustomJSONEncoder))
                    f.write("]")
        except OSError as e:
            self._logger.warning("Audit non persisté (%s)", e)


def setup_logging(settings: Settings) -> AuditLogger:
    """Configure le logging de l'application.

    Description:
        Attache au logger racine `app` un handler console et, si `log_to_files`,
        deux handlers à rotation quotidienne (`generic.log` INFO+, `errors.log` ERROR+).
        Idempotent : les handlers ne sont ajoutés qu'une fois.

    Args:
        settings (Settings): Configuration (niveau, dossier, activation fichiers).

    Returns:
        AuditLogger: Journal d'audit associé au même dossier.
    """
    formatter = logging.Formatter(LOG_FORMAT)
    app_logger = logging.getLogger("app")
    app_logger.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))

    if not app_logger.handlers:  # Éviter les doublons
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        app_logger.addHandler(console)

        if settings.log_to_files:
            logs_dir = Path(settings.logs_dir)
            logs_dir.mkdir(parents=True, exist_ok=True)
            cleanup_old_logs(logs_dir)

            generic_handler = logging.handlers.TimedRotatingFileHandler(
                filename=logs_dir / "generic.log",
                when="midnight",
                interval=1,
                encoding="utf-8",
            )
            generic_handler.suffix = "%Y-%m-%d"
            generic_handler.setLevel(logging.INFO)
            generic_handler.setFormatter(formatter)
            app_logger.addHandler(generic_handler)

            error_handler = logging.handlers.TimedRotatingFileHandler(
                filename=logs_dir / "errors.log",
                when="midnight",
                interval=1,
                encoding="utf-8",
            )
            error_handler.suffix = "%Y-%m-%d"
            error_handler.setLevel(logging.ERROR)
            error_handler.setFormatter(formatter)
            app_logger.addHandler(error_handler)

    return AuditLogger(settings.logs_dir if settings.log_to_files else None)


def cleanup_old_logs(logs_dir: Path, retention_days: int = 30) -> None:
    """Supprime les logs plus anciens que retention_days."""
    cutoff_str = (datetime.now() - timedelta(days=retention_days)).strftime("%Y-%m-%d")

    patterns = [
        f"{logs_dir}/*-audit.json",
        f"{logs_dir}/generic.log.*",
        f"{logs_dir}/errors.log.*",
    ]

    for pattern in patterns:
        for file_path in glob.glob(pattern):
            file_name = os.path.basename(file_path)
            # Date en tête (audit) ou en suffixe (rotation)
            candidates = [file_name[:10], file_name[-10:]]
            for date_part in candidates:
                if len(date_part) == 10 and date_part.count("-") == 2:
                    try:
                        datetime.strptime(date_part, "%Y-%m-%d")
                    except ValueError:
                        continue
                    if date_part < cutoff_str:
                        try:
                            os.remove(file_path)
                        except OSError:
                            continue
                    break
