from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Slide Generation Engine"

    default_llm_provider: str = "mock"
    secondary_providers: list[str] = []
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    openai_fallback_model: str = "gpt-4o"
    anthropic_api_key: str | None = None
    anthropic_model: str = "claude-sonnet-4-20250514"
    anthropic_fallback_model: str = "claude-3-5-haiku-latest"
    minimax_api_key: str | None = None
    minimax_model: str = "MiniMax-M2.5"
    minimax_fallback_model: str = "MiniMax-M2"
    minimax_base_url: str = "https://api.minimax.io/anthropic"

    ai_max_retries: int = 3
    ai_retry_delay_seconds: float = 0.4
    ai_max_backoff_seconds: float = 8.0
    ai_timeout_seconds: float = 30.0
    ai_max_tokens: int = 1400
    ai_temperature: float = 0.7
    ai_cost_per_1k_tokens: float = 0.03

    batch_concurrency: int = 3
    analysis_cache_ttl_seconds: float = 600.0
    enable_content_analysis: bool = False

    log_level: str = "INFO"
    suppress_httpx_info_logs: bool = True
    verbose_ai_trace: bool = True
    log_preview_chars: int = 180

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
