from decimal import Decimal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field(..., alias="DATABASE_URL")

    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field("HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(15, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    log_level: str = Field("INFO", alias="LOG_LEVEL")

    # Installment amounts are rounded to this unit (1 = whole rupees, 0.01 = paise)
    amount_quantum: Decimal = Field(Decimal("1"), alias="FEE_AMOUNT_QUANTUM", gt=0)
    # "today" for overdue derivation is the calendar date in this zone
    timezone: str = Field("Asia/Kolkata", alias="FEE_TIMEZONE")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
