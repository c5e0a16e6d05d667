"""
Application configuration and settings.
"""

from functools import lru_cache
from pathlib import Path

import yaml
from pydantic_settings import BaseSettings

# Built-in config directory shipped next to the package (backend/config)
DEFAULT_CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Speech-to-text providers
    deepgram_api_key: str = ""
    deepgram_url: str = "https://api.deepgram.com"
    deepgram_model: str = "nova-2"
    assemblyai_api_key: str = ""
    assemblyai_url: str = "https://api.assemblyai.com"
    assemblyai_poll_interval: float = 3.0
    transcription_language: str = "en"

    # Content processing (LLM tiers come from config/models.yaml)
    anthropic_api_key: str = ""
    ollama_url: str = "http://localhost:11434"
    llm_timeout: int = 300

    # Job execution
    max_attempts: int = 3
    per_attempt_timeout_ms: int = 120_000
    backoff_base_ms: int = 1_000
    backoff_cap_ms: int = 10_000
    worker_pool_size: int = 5
    queue_capacity: int = 100
    transcription_priority: int = 10
    content_priority: int = 5

    # Result cache
    cache_ttl_ms: int = 7 * 24 * 3600 * 1000  # 7 days
    degraded_cache_ttl_ms: int = 5 * 60 * 1000  # 5 minutes
    cache_max_entries: int = 1000

    # Health monitoring
    health_failure_threshold: int = 3
    health_probe_interval_s: float = 60.0
    health_probe_timeout_s: float = 5.0

    # Statistics
    stats_window_size: int = 100

    # Paths
    config_dir: Path = DEFAULT_CONFIG_DIR

    # Logging
    log_level: str = "INFO"
    log_format: str = "structured"  # "simple" or "structured"

    # Per-stage log levels (optional overrides)
    log_level_pipeline: str | None = None
    log_level_engine: str | None = None
    log_level_health: str | None = None
    log_level_cache: str | None = None
    log_level_providers: str | None = None
    log_level_ai_clients: str | None = None

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def load_models_config(settings: Settings | None = None) -> dict:
    """
    Load model tier configuration from config/models.yaml.

    Args:
        settings: Optional settings instance

    Returns:
        Models configuration dictionary with content tiers and pricing
    """
    if settings is None:
        settings = get_settings()

    models_path = settings.config_dir / "models.yaml"
    with open(models_path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def get_content_tiers(settings: Settings | None = None) -> list[dict]:
    """
    Get ordered content-processing tiers (best first).

    Each tier is a dict with at least ``id`` and ``provider``
    ("claude" or "ollama"), and optionally ``pricing`` and ``max_tokens``.

    Args:
        settings: Optional settings instance

    Returns:
        List of tier dicts in preference order
    """
    config = load_models_config(settings)
    return list(config.get("content_tiers", []))


def load_prompt(stage: str, component: str, settings: Settings | None = None) -> str:
    """
    Load a prompt template from config/prompts/{stage}/{component}.md.

    Args:
        stage: Prompt group ("content")
        component: Prompt name ("summary_system", "insights_user", ...)
        settings: Optional settings instance

    Returns:
        Prompt template content

    Raises:
        FileNotFoundError: If the prompt file does not exist
    """
    if settings is None:
        settings = get_settings()

    path = settings.config_dir / "prompts" / stage / f"{component}.md"
    if not path.exists():
        raise FileNotFoundError(f"Prompt not found: stage={stage}, component={component} ({path})")
    return path.read_text(encoding="utf-8")
