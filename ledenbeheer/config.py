from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

PACKAGE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = str(PACKAGE_DIR / "templates")
STATIC_DIR = str(PACKAGE_DIR / "static")


class Settings(BaseSettings):
    database_url: str = "sqlite+pysqlite:///./ledenbeheer.db"
    secret_key: str = "change-me"
    debug: bool = False
    log_level: str = "INFO"

    auth_user_header: str = "X-Auth-User"
    public_base_url: str = "http://localhost:8000"

    mollie_api_key: str = ""
    mollie_api_base: str = "https://api.mollie.com/v2"

    resend_api_key: str = ""
    resend_api_base: str = "https://api.resend.com"
    mail_from: str = "Ledenbeheer <noreply@example.org>"

    default_vat_rate: int = 21
    default_contribution_amount: int = 25
    default_country: str = "België"
    organization_name: str = "Ledenbeheer"

    model_config = SettingsConfigDict(env_file=".env", env_prefix="")


settings = Settings()
