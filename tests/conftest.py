import pytest

from app.config import Settings
from app.services.llm.base import LLMError
from app.services.scraping_service import ScrapingError
from tests.fakes import Harness, build_harness


@pytest.fixture
def harness() -> Harness:
    return build_harness()


@pytest.fixture
def test_settings() -> Settings:
    """Settings isolated from the developer's .env file."""
    return Settings(
        _env_file=None,
        whatsapp_verify_token="verify-me",
        whatsapp_token="token",
        whatsapp_phone_id="12345",
        chunk_delay_seconds=0,
    )


@pytest.fixture
def llm_error() -> LLMError:
    return LLMError("model unavailable")


@pytest.fixture
def scraping_error() -> ScrapingError:
    return ScrapingError("instagram returned status 429")
