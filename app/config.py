from typing import List, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # WhatsApp Cloud API
    whatsapp_token: Optional[str] = None
    whatsapp_phone_id: Optional[str] = None
    whatsapp_verify_token: Optional[str] = None
    whatsapp_app_secret: Optional[str] = None
    whatsapp_api_version: str = "v19.0"
    whatsapp_timeout_seconds: float = 20.0

    # OpenAI
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"
    openai_timeout_seconds: float = 30.0

    # Session store
    redis_url: Optional[str] = None
    redis_socket_timeout_seconds: float = 5.0
    session_key_prefix: str = "evento:"
    session_ttl_seconds: int = 7200
    inbound_dedup_ttl_seconds: int = 86400
    session_lock_backend: str = "memory"
    session_lock_timeout_seconds: float = 120.0

    # Delivery
    message_max_length: int = 1000
    chunk_delay_seconds: float = 0.7
    send_max_attempts: int = 3
    send_retry_backoff_seconds: float = 2.0

    # Funnel
    reset_keywords: List[str] = ["reset", "reiniciar"]
    scraping_timeout_seconds: float = 15.0
    # Derived from the scraping, OpenAI and delivery timeouts when unset.
    generation_deadline_seconds: Optional[float] = None

    # Kommo CRM
    kommo_api_key: Optional[str] = None
    kommo_account_id: Optional[str] = None

    log_level: str = "INFO"
    log_mask_phone_numbers: bool = True
    debug: bool = False

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
