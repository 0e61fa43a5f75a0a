"""Configuration settings for ContentForge."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_FALLBACK_MODELS = [
    "moonshotai/kimi-k2-0905:exacto",
    "qwen/qwen3-coder:exacto",
    "xiaomi/mimo-v2-flash",
]

DEFAULT_MODEL_PRESETS = {
    "glm": "z-ai/glm-4.6:exacto",
    "deepseek": "deepseek/deepseek-v3.2-exp",
    "kimi": "moonshotai/kimi-k2-0905:exacto",
    "qwen": "qwen/qwen3-coder:exacto",
    "minimax": "minimax/minimax-m2",
    "mimo": "xiaomi/mimo-v2-flash",
}


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or overrides."""

    model_config = SettingsConfigDict(
        env_prefix="", case_sensitive=False, populate_by_name=True
    )

    openai_api_key: str | None = Field(default=None, validation_alias="OPENAI_API_KEY")
    openai_base_url: str = Field(
        default="https://openrouter.ai/api/v1", validation_alias="OPENAI_BASE_URL"
    )
    openai_model: str = Field(
        default="moonshotai/kimi-k2-0905:exacto", validation_alias="OPENAI_MODEL"
    )
    openai_timeout_seconds: int = Field(
        default=60, validation_alias="OPENAI_TIMEOUT_SECONDS"
    )
    openai_extra_headers: str | None = Field(
        default=None, validation_alias="OPENAI_EXTRA_HEADERS"
    )
    openai_disable_tool_choice: bool = Field(
        default=False, validation_alias="OPENAI_DISABLE_TOOL_CHOICE"
    )
    openai_force_chatcompletions_path: str | None = Field(
        default=None, validation_alias="OPENAI_FORCE_CHATCOMPLETIONS_PATH"
    )
    transport_retries: int = Field(default=3, validation_alias="CONTENTFORGE_TRANSPORT_RETRIES")
    backoff_seconds: float = Field(default=1.0, validation_alias="CONTENTFORGE_BACKOFF_SECONDS")
    private_mode: bool = Field(default=True, validation_alias="CONTENTFORGE_PRIVATE_MODE")
    fallback_models: list[str] = Field(
        default_factory=lambda: list(DEFAULT_FALLBACK_MODELS),
        validation_alias="CONTENTFORGE_FALLBACK_MODELS",
    )
    model_presets: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_MODEL_PRESETS),
        validation_alias="CONTENTFORGE_MODEL_PRESETS",
    )
    max_output_tokens: int = Field(default=10000, validation_alias="CONTENTFORGE_MAX_OUTPUT_TOKENS")
    temperature: float = Field(default=0.7, validation_alias="CONTENTFORGE_TEMPERATURE")

    max_iterations: int = Field(default=10, validation_alias="CONTENTFORGE_MAX_ITERATIONS")
    max_read_only_iterations: int = Field(
        default=4, validation_alias="CONTENTFORGE_MAX_READ_ONLY_ITERATIONS"
    )
    max_tool_output_chars: int = Field(
        default=12000, validation_alias="CONTENTFORGE_MAX_TOOL_OUTPUT_CHARS"
    )
    max_prior_message_chars: int = Field(
        default=24000, validation_alias="CONTENTFORGE_MAX_PRIOR_MESSAGE_CHARS"
    )
    max_prior_turns: int = Field(default=20, validation_alias="CONTENTFORGE_MAX_PRIOR_TURNS")

    failure_threshold: int = Field(default=2, validation_alias="CONTENTFORGE_FAILURE_THRESHOLD")
    invocation_attempts: int = Field(
        default=4, validation_alias="CONTENTFORGE_INVOCATION_ATTEMPTS"
    )
    quota_reduction_ratio: float = Field(
        default=0.8, validation_alias="CONTENTFORGE_QUOTA_REDUCTION_RATIO"
    )
    quota_min_output_tokens: int = Field(
        default=500, validation_alias="CONTENTFORGE_QUOTA_MIN_OUTPUT_TOKENS"
    )
    counter_store_size: int = Field(default=64, validation_alias="CONTENTFORGE_COUNTER_STORE_SIZE")

    workspace_dir: str = Field(default=".", validation_alias="CONTENTFORGE_WORKSPACE_DIR")
    content_dir: str = Field(default="src", validation_alias="CONTENTFORGE_CONTENT_DIR")
    build_log_dir: str = Field(
        default="logs/build-logs", validation_alias="CONTENTFORGE_BUILD_LOG_DIR"
    )
    trace_dir: str | None = Field(default=None, validation_alias="CONTENTFORGE_TRACE_DIR")
    build_max_attempts: int = Field(default=3, validation_alias="CONTENTFORGE_BUILD_MAX_ATTEMPTS")
    build_model: str | None = Field(default=None, validation_alias="CONTENTFORGE_BUILD_MODEL")

    fast_path_min_confidence: float = Field(
        default=0.5, validation_alias="CONTENTFORGE_FAST_PATH_MIN_CONFIDENCE"
    )
    fast_path_max_words: int = Field(
        default=12, validation_alias="CONTENTFORGE_FAST_PATH_MAX_WORDS"
    )
    router_confidence: dict[str, float] = Field(
        default_factory=dict, validation_alias="CONTENTFORGE_ROUTER_CONFIDENCE"
    )

    def resolve_model(self, name: str) -> str:
        """Map a preset alias to its provider model id."""
        return self.model_presets.get(name.lower(), name)


DEFAULT_SETTINGS = Settings()
