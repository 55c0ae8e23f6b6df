from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://journal:journal@db:5432/journal"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "https://myapp.com,https://api.myapp.com"
    CORS_ORIGINS: str = "*"

    # --- Language model ---
    OPENAI_API_KEY: str = ""
    LLM_MODEL: str = "gpt-4o-mini"
    LLM_TEMPERATURE: float = 0.7
    LLM_TIMEOUT_SECONDS: float = 60.0
    # Canned responses instead of provider calls. Forced on when no API key
    # is configured outside production.
    LLM_MOCK_MODE: bool = False

    # --- Journal memory window ---
    MEMORY_DAILY_LIMIT: int = 14
    MEMORY_DAILY_WITH_REPLY: int = 5
    MEMORY_WEEKLY_LIMIT: int = 3
    MEMORY_MONTHLY_LIMIT: int = 2

    TODO_TTL_HOURS: int = 24

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    @property
    def llm_mock_enabled(self) -> bool:
        if self.LLM_MOCK_MODE:
            return True
        return not self.OPENAI_API_KEY and self.APP_ENV != "production"


settings = Settings()
