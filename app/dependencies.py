"""Wiring of collaborators and the FastAPI dependency providers."""

import math
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request

from app.config import Settings
from app.logging_config import get_logger
from app.services.ai_service import AIService
from app.services.conversation_service import ConversationService
from app.services.crm_service import KommoClient
from app.services.delivery_service import DeliveryService
from app.services.enrichment_service import EnrichmentService
from app.services.llm import OpenAIProvider
from app.services.locks import KeyedLock, RedisKeyedLock
from app.services.scraping_service import InstagramScraper
from app.services.session_store import InMemorySessionStore, RedisSessionStore, SessionStore
from app.services.task_supervisor import TaskSupervisor
from app.services.whatsapp_service import WhatsAppClient

logger = get_logger("dependencies")

# Generous upper bound for a letter of LETTER_MAX_TOKENS tokens.
LETTER_MAX_CHARS = 10000


def generation_deadline_seconds(settings: Settings, delivery: DeliveryService) -> float:
    """How long a session may stay GENERATING before a turn gives up on its generation unit."""
    if settings.generation_deadline_seconds:
        return settings.generation_deadline_seconds
    # The letter chunks plus the closing message.
    chunk_count = math.ceil(LETTER_MAX_CHARS / settings.message_max_length) + 1
    return (
        settings.scraping_timeout_seconds
        + settings.openai_timeout_seconds
        + delivery.worst_case_seconds(chunk_count, settings.whatsapp_timeout_seconds)
    )


@dataclass
class ServiceContainer:
    settings: Settings
    store: SessionStore
    whatsapp: WhatsAppClient
    delivery: DeliveryService
    enrichment: EnrichmentService
    conversation: ConversationService
    supervisor: TaskSupervisor


def build_container(
    settings: Settings,
    http_client: httpx.AsyncClient,
    redis_client=None,
) -> ServiceContainer:
    if redis_client is not None:
        store: SessionStore = RedisSessionStore(
            redis_client,
            key_prefix=settings.session_key_prefix,
            ttl_seconds=settings.session_ttl_seconds,
        )
    else:
        logger.warning("REDIS_URL not set, sessions are kept in process memory")
        store = InMemorySessionStore(ttl_seconds=settings.session_ttl_seconds)

    if settings.session_lock_backend == "redis" and redis_client is not None:
        locks = RedisKeyedLock(
            redis_client,
            key_prefix=settings.session_key_prefix,
            timeout_seconds=settings.session_lock_timeout_seconds,
        )
    else:
        locks = KeyedLock()

    whatsapp = WhatsAppClient(
        http_client,
        token=settings.whatsapp_token,
        phone_id=settings.whatsapp_phone_id,
        api_version=settings.whatsapp_api_version,
        timeout_seconds=settings.whatsapp_timeout_seconds,
    )
    delivery = DeliveryService(
        whatsapp,
        max_length=settings.message_max_length,
        chunk_delay_seconds=settings.chunk_delay_seconds,
        max_attempts=settings.send_max_attempts,
        retry_backoff_seconds=settings.send_retry_backoff_seconds,
    )

    provider = OpenAIProvider(
        http_client,
        api_key=settings.openai_api_key,
        default_model=settings.openai_model,
        timeout_seconds=settings.openai_timeout_seconds,
    )
    ai_service = AIService(provider, model=settings.openai_model)
    scraper = InstagramScraper(http_client, timeout_seconds=settings.scraping_timeout_seconds)
    enrichment = EnrichmentService(scraper, ai_service)

    crm: Optional[KommoClient] = KommoClient(
        http_client,
        api_key=settings.kommo_api_key,
        account_id=settings.kommo_account_id,
    )
    if not crm.enabled:
        crm = None

    supervisor = TaskSupervisor()
    conversation = ConversationService(
        store,
        delivery,
        enrichment,
        ai_service,
        supervisor,
        locks=locks,
        crm=crm,
        reset_keywords=settings.reset_keywords,
        session_ttl_seconds=settings.session_ttl_seconds,
        dedup_ttl_seconds=settings.inbound_dedup_ttl_seconds,
        generation_deadline_seconds=generation_deadline_seconds(settings, delivery),
    )
    return ServiceContainer(
        settings=settings,
        store=store,
        whatsapp=whatsapp,
        delivery=delivery,
        enrichment=enrichment,
        conversation=conversation,
        supervisor=supervisor,
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


def get_settings(request: Request) -> Settings:
    return request.app.state.container.settings


def get_conversation_service(request: Request) -> ConversationService:
    return request.app.state.container.conversation


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.container.store
