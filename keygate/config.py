from pydantic import AnyUrl, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    SERVICE_PORT: int = 8080
    LOG_JSON: bool = True
    LOG_LEVEL: str = "INFO"
    # Gateway
    PROTECTED_PATH_PREFIX: str = "/media/"
    EXCLUDED_PATHS: str = ""  # Comma-separated list of path prefixes
    API_KEY_HEADER: str = "x-api-key"
    UPSTREAM_URL: AnyUrl | None = None
    UPSTREAM_TIMEOUT: float = 30.0
    # Encryption key: taken from the environment, else from the secret store
    ENCRYPTION_KEY: SecretStr | None = None
    ENCRYPTION_KEY_SECRET_NAME: str = "ENCRYPTION_KEY"
    # Backend selection: "file", "redis" or "memory" (single process only)
    STORE_ADAPTER: Literal["memory", "file", "redis"] = "file"
    STORE_FILE: str = "keystore.json"
    KEY_NAMESPACE: str = "API_KEYS"
    SECRETS_ADAPTER: Literal["memory", "file", "redis"] = "file"
    SECRETS_FILE: str = ".keygate-secrets.json"
    REDIS_URL: AnyUrl | None = None

    @property
    def excluded_paths(self) -> list[str]:
        return [p.strip() for p in self.EXCLUDED_PATHS.split(",") if p.strip()]

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
