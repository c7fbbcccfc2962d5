"""
Application configuration using pydantic-settings.
Every knob has a safe default so the chat surface boots without any provider keys;
missing keys degrade features (unavailable phase, no retrieval, no email) instead of crashing.
"""
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_base_url: str = "http://localhost:8000"
    log_level: str = "INFO"

    # Database (primary lead store)
    database_url: str = "sqlite+aiosqlite:///./leadcapture.db"
    database_pool_size: int = 20
    database_max_overflow: int = 10

    # OpenAI (primary generation + embeddings)
    openai_api_key: str = ""
    openai_base_url: str = ""
    openai_model: str = "gpt-4o"
    openai_max_tokens: int = 500
    openai_timeout_seconds: int = 20
    openai_embedding_model: str = "text-embedding-ada-002"
    generation_temperature: float = 0.7

    # Anthropic (fallback generation)
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-haiku-4-5-20251001"
    anthropic_max_tokens: int = 500
    anthropic_timeout_seconds: int = 20

    # Knowledge base (vector search over PostgREST RPC)
    knowledge_base_url: str = ""
    knowledge_base_key: str = ""
    knowledge_search_rpc: str = "search_knowledge"
    knowledge_match_threshold: float = 0.3
    knowledge_match_count: int = 3
    knowledge_timeout_seconds: int = 8

    # Fallback spreadsheet webhook
    sheet_webhook_url: str = ""
    sheet_webhook_timeout_seconds: int = 10

    # SendGrid (admin notifications)
    sendgrid_api_key: str = ""
    sendgrid_from_email: str = "leads@amplifyx.com.au"
    sendgrid_from_name: str = "Lead Capture"
    notification_recipient: str = ""

    # Sentry
    sentry_dsn: str = ""

    # Business identity used in prompts and fallback messages
    business_name: str = "Amplifyx Technologies"
    contact_email: str = "hello@amplifyx.com.au"
    reference_prefix: str = "AMP"

    # Input gate + rate limits
    min_message_length: int = 2
    max_message_length: int = 500
    max_messages_per_minute: int = 5
    max_messages_per_session: int = 30
    session_idle_timeout_minutes: int = 30
    spam_keywords: list[str] = [
        "viagra", "casino", "lottery", "prince", "inheritance", "crypto", "nft",
    ]
    name_denylist: list[str] = [
        "not", "sure", "unsure", "uncertain", "maybe", "possibly", "probably", "definitely",
    ]

    # Conversation + scoring thresholds
    history_window: int = 10
    persisted_history_limit: int = 50
    qualified_threshold: int = 60
    notification_threshold: int = 70

    # Local backup of every submission attempt (JSON lines)
    submission_backup_path: str = "./data/submissions.jsonl"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
