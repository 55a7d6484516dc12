from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")
    # Reporting may read from a replica; falls back to the primary when unset.
    read_replica_database_url: Optional[str] = Field(None, alias="READ_REPLICA_DATABASE_URL")
    db_pool_timeout_seconds: float = Field(10.0, alias="DB_POOL_TIMEOUT_SECONDS")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")

    ledger_operation_timeout_seconds: float = Field(15.0, alias="LEDGER_OPERATION_TIMEOUT_SECONDS")
    invoice_number_max_attempts: int = Field(20, alias="INVOICE_NUMBER_MAX_ATTEMPTS")
    default_payee_vpa: str = Field("school@upi", alias="DEFAULT_PAYEE_VPA")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
