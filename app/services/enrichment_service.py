"""Profile enrichment: scrape (when allowed), generate the letter, fall back when needed.

Policy: a failed or empty model call never ends in an error state. The user
receives the deterministic fallback letter and the result is marked DEGRADED.
FAILED is reserved for an orchestrator that could not produce any text at all.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from app.logging_config import get_logger
from app.schemas.profile import ProfileData
from app.services.ai_service import AIService, build_fallback_letter
from app.services.llm.base import LLMError
from app.services.scraping_service import InstagramScraper, ScrapingError

logger = get_logger("enrichment")


class EnrichmentStatus(str, Enum):
    FULL = "full"
    DEGRADED = "degraded"
    FAILED = "failed"


@dataclass
class EnrichmentResult:
    status: EnrichmentStatus
    document: Optional[str] = None
    profile: ProfileData = field(default_factory=ProfileData)
    degraded_reasons: list[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def has_document(self) -> bool:
        return self.status != EnrichmentStatus.FAILED and bool(self.document)


class EnrichmentService:
    def __init__(self, scraper: Optional[InstagramScraper], ai_service: AIService):
        self.scraper = scraper
        self.ai_service = ai_service

    async def _scrape(self, handle: str, reasons: list[str]) -> ProfileData:
        if self.scraper is None:
            reasons.append("scraper_unavailable")
            return ProfileData(username=handle)
        try:
            return await self.scraper.fetch_profile(handle)
        except ScrapingError as exc:
            logger.warning(
                "Profile scraping failed, continuing with empty profile",
                extra={"context": {"handle": handle, "error": str(exc)}},
            )
            reasons.append("scraping_failed")
            return ProfileData(username=handle)

    async def _generate(self, profile: ProfileData, name: str, handle: Optional[str], reasons: list[str]) -> str:
        try:
            return await self.ai_service.generate_letter(profile, name)
        except LLMError as exc:
            logger.warning(
                "Letter generation failed, using fallback letter",
                extra={"context": {"name": name, "error": str(exc)}},
            )
            reasons.append("generation_failed")
            return build_fallback_letter(name, handle)

    async def enrich(self, name: Optional[str], handle: Optional[str], with_scraping: bool) -> EnrichmentResult:
        reasons: list[str] = []
        display_name = name or "Participante"
        try:
            if with_scraping and handle:
                profile = await self._scrape(handle, reasons)
            else:
                profile = ProfileData(username=handle)

            document = await self._generate(profile, display_name, handle, reasons)
        except Exception as exc:
            logger.error(
                "Enrichment crashed",
                exc_info=True,
                extra={"context": {"name": name, "handle": handle, "error": str(exc)}},
            )
            return EnrichmentResult(status=EnrichmentStatus.FAILED, error=str(exc) or type(exc).__name__)

        if not document or not document.strip():
            return EnrichmentResult(
                status=EnrichmentStatus.FAILED,
                profile=profile,
                degraded_reasons=reasons,
                error="empty document",
            )

        status = EnrichmentStatus.DEGRADED if reasons else EnrichmentStatus.FULL
        logger.info(
            "Enrichment finished",
            extra={
                "context": {
                    "status": status.value,
                    "with_scraping": with_scraping,
                    "reasons": reasons,
                    "length": len(document),
                }
            },
        )
        return EnrichmentResult(status=status, document=document, profile=profile, degraded_reasons=reasons)
