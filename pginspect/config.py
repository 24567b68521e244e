"""
Connection settings
===================

Values come from the environment (``PGINSPECT_*``) or a ``.env`` file.
"""
import functools

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    HOST: str = "localhost"
    PORT: int = 5432
    DATABASE: str = "postgres"
    USER: str = "postgres"
    PASSWORD: str = ""

    CONNECT_TIMEOUT: int = 5  # seconds
    STATEMENT_TIMEOUT_MS: int = 10000
    APPLICATION_NAME: str = "pginspect"

    LOG_LEVEL: str = "WARNING"

    model_config = SettingsConfigDict(
        env_prefix="PGINSPECT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def connect_kwargs(self):
        """Keyword arguments for ``psycopg2.connect``.

        The session is read-only and every statement is bounded by
        ``STATEMENT_TIMEOUT_MS``.
        """
        options = (
            "-c default_transaction_read_only=on "
            f"-c statement_timeout={int(self.STATEMENT_TIMEOUT_MS)}"
        )
        return {
            'host': self.HOST,
            'port': self.PORT,
            'database': self.DATABASE,
            'user': self.USER,
            'password': self.PASSWORD,
            'connect_timeout': self.CONNECT_TIMEOUT,
            'application_name': self.APPLICATION_NAME,
            'options': options,
        }

    def dsn_masked(self) -> str:
        return f"postgresql://{self.USER}:***@{self.HOST}:{self.PORT}/{self.DATABASE}"


@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
