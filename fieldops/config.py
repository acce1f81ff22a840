import os
from urllib.parse import quote_plus

from dotenv import load_dotenv

# Load .env before reading any variables
load_dotenv()


class Settings:
    # API
    API_TITLE = "Field Operations Billing API"
    API_VERSION = "1.0.0"
    DESCRIPTION = "Crew work submissions, QC gating, invoice settlement and AI field audits"

    # Default environment (test, prod, local)
    ENVIRONMENT = os.getenv("ENVIRONMENT", "local")

    # State database per environment
    DATABASE_URL_LOCAL = os.getenv("DATABASE_URL_LOCAL", "sqlite:///./fieldops.db")
    DATABASE_URL_TEST = os.getenv("DATABASE_URL_TEST", "sqlite:///./fieldops_test.db")

    DB_PROD_HOST = os.getenv("DB_PROD_HOST", "localhost")
    DB_PROD_PORT = int(os.getenv("DB_PROD_PORT", "3306"))
    DB_PROD_USER = os.getenv("DB_PROD_USER", "fieldops")
    DB_PROD_PASSWORD = os.getenv("DB_PROD_PASSWORD", "")
    DB_PROD_DATABASE = os.getenv("DB_PROD_DATABASE", "fieldops")

    # Billing
    TRANSACTION_FEE_RATE = float(os.getenv("TRANSACTION_FEE_RATE", "0.0069"))  # 0.69%
    SETTLEMENT_DELAY_SECONDS = float(os.getenv("SETTLEMENT_DELAY_SECONDS", "0"))
    DEFAULT_CREW_NAME = os.getenv("DEFAULT_CREW_NAME", "Crew Alpha")
    SPAN_LENGTH_FT = float(os.getenv("SPAN_LENGTH_FT", "150"))

    # Generative AI (any OpenAI-compatible endpoint)
    AI_BASE_URL = os.getenv("AI_BASE_URL")
    AI_API_KEY = os.getenv("AI_API_KEY")
    AI_MODEL_NAME = os.getenv("AI_MODEL_NAME", "gemini-2.5-flash")
    AI_VISION_MODEL = os.getenv("AI_VISION_MODEL", "gemini-2.5-pro")
    AI_TRANSCRIBE_MODEL = os.getenv("AI_TRANSCRIBE_MODEL", "whisper-1")
    AI_TIMEOUT = float(os.getenv("AI_TIMEOUT", "60"))

    def set_environment(self, environment: str):
        """Override the active environment for this process."""
        if environment in ["test", "prod", "local"]:
            self.ENVIRONMENT = environment
        else:
            raise ValueError(f"Unsupported environment: {environment}, expected test/prod/local")

    def resolve_environment(self, environment: str = None) -> str:
        """Return the requested environment, falling back to the configured one."""
        if environment is None:
            return self.ENVIRONMENT
        if environment not in ["test", "prod", "local"]:
            raise ValueError(f"Unsupported environment: {environment}, expected test/prod/local")
        return environment

    def get_database_url(self, environment: str = None) -> str:
        env = self.resolve_environment(environment)
        if env == "prod":
            return (
                f"mysql+pymysql://{self.DB_PROD_USER}:{quote_plus(self.DB_PROD_PASSWORD)}@"
                f"{self.DB_PROD_HOST}:{self.DB_PROD_PORT}/{self.DB_PROD_DATABASE}"
                "?charset=utf8mb4"
            )
        if env == "test":
            return self.DATABASE_URL_TEST
        return self.DATABASE_URL_LOCAL

    @property
    def database_url(self) -> str:
        return self.get_database_url()

    @property
    def ai_enabled(self) -> bool:
        return bool(self.AI_API_KEY)


settings = Settings()
