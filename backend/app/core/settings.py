# backend/app/core/settings.py
# Configuration applicative (pydantic-settings) : stockage, mail, plafonds mémoire et admin de bootstrap.

from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich import print


DEFAULT_ADMIN_ID = "admin"


class Settings(BaseSettings):
    # === App settings ===
    app_name: str = "DAO Tracker"
    environment: str = "development"  # or "production"
    api_version: str = "0.1.0"

    # === Stockage ===
    use_mongo: bool = False
    strict_db_mode: bool = False  # échec immédiat si Mongo est requis mais injoignable
    fallback_on_db_error: bool = True  # repli mémoire si Mongo échoue
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "dao-management"
    mongodb_fast_fail: bool = True
    mongodb_max_pool_size: int = 5

    # === MAIL ===
    mail_from: str = "no-reply@dao-tracker.fr"
    smtp_host: str = "localhost"
    smtp_port: int = 1025
    smtp_username: str = ""
    smtp_password: str = ""
    smtp_start_tls: bool = False
    smtp_batch_size: int = 25
    email_broadcast_all: bool = False
    mail_max_attempts: int = 5
    mail_base_delay_s: float = 1.0
    mail_max_delay_s: float = 3600.0
    mail_poll_interval_s: float = 2.0
    mail_failed_jobs_max: int = 100  # jobs abandonnés conservés pour diagnostic

    # === Plafonds ===
    history_max_per_day: int = 1000
    notifications_max_items: int = 1000
    notifications_list_limit: int = 200
    aggregate_max_lines: int = 6
    page_size_max: int = 100
    create_max_attempts: int = 3
    idempotency_ttl_s: float = 600.0

    # === HTTP ===
    cors_origins: list[str] = ["http://localhost:5173"]
    max_body_bytes: int = 10 * 1024 * 1024

    # === ADMIN ===
    # L'identité arrive par l'en-tête `X-User-Id` : la passerelle doit le supprimer
    # des requêtes entrantes. En production, `ADMIN_ID` doit être défini explicitement.
    admin_id: str = DEFAULT_ADMIN_ID
    admin_name: str = "Administrateur"
    admin_email: str = "admin@dao-tracker.fr"

    # === LOGS ===
    logs_dir: str = "logs"
    log_to_files: bool = True
    log_level: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @model_validator(mode="after")
    def _require_explicit_admin_in_production(self) -> "Settings":
        if self.is_production and self.admin_id == DEFAULT_ADMIN_ID:
            raise ValueError("ADMIN_ID must be set to a non-default value in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def mongodb_timeout_ms(self) -> int | None:
        """Timeout de sélection/connexion Mongo.

        Description:
            En mode fail-fast, des timeouts courts permettent de basculer rapidement
            vers le stockage mémoire quand Mongo n'est pas disponible localement.

        Returns:
            int | None: Timeout en millisecondes, ou None (valeur par défaut du driver).
        """
        if not self.mongodb_fast_fail:
            return None
        return 5000 if self.is_production else 800


@lru_cache
def get_settings() -> Settings:
    """Instance globale des settings (chargée une seule fois)."""
    loaded = Settings()
    print("--- Settings loaded ---")
    return loaded
