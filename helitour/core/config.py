from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "Helitour Booking API"
    API_V1_STR: str = "/api/v1"
    SECRET_KEY: str = "changeme"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 8

    # Database
    POSTGRES_SERVER: str = "localhost"
    POSTGRES_USER: str = "postgres"
    POSTGRES_PASSWORD: str = "12345"
    POSTGRES_DB: str = "helitour_db"
    POSTGRES_PORT: int = 5432
    DATABASE_URL: str = ""

    # Payments (refunds only; capture lives in the storefront)
    STRIPE_SECRET_KEY: str = ""

    # Flight dates are local calendar days at the heliport
    BUSINESS_TIMEZONE: str = "Asia/Tokyo"

    # Pricing: consumption tax, rounded down
    TAX_RATE_PERCENT: int = 10

    # Slot generation
    DEFAULT_SLOT_MAX_PAX: int = 4
    SLOT_GENERATION_MAX_DAYS: int = 90
    SLOT_GENERATION_BATCH_SIZE: int = 100

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore"
    )

    def assemble_db_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PASSWORD}@{self.POSTGRES_SERVER}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"

settings = Settings()
settings.DATABASE_URL = settings.assemble_db_url()
