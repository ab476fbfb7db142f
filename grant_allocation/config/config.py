"""Configuration management for the allocation pipeline."""

from typing import Literal, Optional
from pydantic_settings import BaseSettings


REQUIRED_VARS = [
    "SUPABASE_URL",
    "SUPABASE_KEY",
]


class Config(BaseSettings):
    """Application configuration from environment variables."""

    # Required
    supabase_url: str
    supabase_key: str

    # LLM
    anthropic_api_key: Optional[str] = None
    llm_model: str = "claude-sonnet-4-5"
    llm_max_tokens: int = 16000
    llm_temperature: float = 0.1

    # QuickBooks OAuth app
    qb_client_id: Optional[str] = None
    qb_client_secret: Optional[str] = None
    qb_environment: Literal["sandbox", "production"] = "sandbox"

    # Optional
    sync_interval_minutes: int = 15
    allocation_settings_path: Optional[str] = None
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "case_sensitive": False, "extra": "ignore"}


def validate_config() -> Config:
    """Load and validate configuration from environment.

    Raises ValueError with descriptive message listing ALL missing
    required variables (not just the first one).
    """
    try:
        return Config()  # type: ignore[call-arg]
    except Exception as exc:
        # Collect missing fields from the pydantic error
        missing = []
        err_str = str(exc)
        for var in REQUIRED_VARS:
            if var.lower() in err_str.lower():
                missing.append(var)
        if missing:
            names = ", ".join(missing)
            raise ValueError(
                f"Missing required environment variable(s): {names}. "
                "Please set them in your .env file or environment."
            ) from exc
        raise


def load_config() -> Config:
    """Load configuration from environment (startup entry point)."""
    return validate_config()
