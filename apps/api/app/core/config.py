from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "dev"
    auth_mode: str = "none"  # none | forwardauth
    root_path: str = ""
    log_level: str = "INFO"

    postgres_db: str = "family_registry"
    postgres_user: str = "family_user"
    postgres_password: str = "family_pass"
    postgres_host: str = "db"
    postgres_port: int = 5432
    database_url_override: str | None = None

    # Family membership rules
    member_approval_threshold: int = 5
    transaction_retries: int = 3

    # Login provisioning for family members
    default_member_password: str = "12345678"
    placeholder_email_domain: str = "family.local"
    mobile_country_code: str = "+91"
    bcrypt_rounds: int = 12
    bootstrap_roles_on_startup: bool = True

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @property
    def database_url(self) -> str:
        if self.database_url_override:
            return self.database_url_override
        return (
            f"postgresql+psycopg2://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


settings = Settings()
