from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    log_level: str = "INFO"

    mysql_host: str = "127.0.0.1"
    mysql_port: int = 3306
    mysql_database: str = "canvas_vault"
    mysql_user: str = "canvas_vault"
    mysql_password: str = "change_me_mysql_app"
    database_url_override: str | None = Field(default=None, validation_alias="database_url")

    jwt_secret: str = "development-secret"
    jwt_issuer: str = "canvas-vault"
    jwt_access_ttl_minutes: int = 60

    vault_encryption_key: str | None = None
    master_password_bcrypt_rounds: int = Field(default=12, ge=10, le=31)
    vault_share_rotate_on_disable: bool = False
    frontend_url: str = "http://localhost:5173"

    @property
    def is_production(self) -> bool:
        return self.app_env.strip().lower() == "production"

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"mysql+aiomysql://{self.mysql_user}:{self.mysql_password}"
            f"@{self.mysql_host}:{self.mysql_port}/{self.mysql_database}"
        )


settings = Settings()
