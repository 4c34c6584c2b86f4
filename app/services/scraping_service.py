import re
from html.parser import HTMLParser
from typing import Optional

import httpx

from app.logging_config import get_logger
from app.schemas.profile import ProfileData
from app.services.validation import is_valid_handle_format

logger = get_logger("scraping_service")

PROFILE_URL = "https://www.instagram.com/{handle}/"
USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0 Safari/537.36"

_COUNT_PATTERN = r"([\d.,]+\s*[kKmM]?)\s+{label}"
_HASHTAG_PATTERN = re.compile(r"#(\w+)")
_LOCATION_PATTERN = re.compile(r"📍\s*([^\n|•·]+)")


class ScrapingError(Exception):
    """The public profile could not be fetched or parsed."""


class _MetaTagParser(HTMLParser):
    def __init__(self):
        super().__init__()
        self.meta: dict[str, str] = {}
        self.external_links: list[str] = []

    def handle_starttag(self, tag, attrs):
        attributes = dict(attrs)
        if tag == "meta":
            key = attributes.get("property") or attributes.get("name")
            content = attributes.get("content")
            if key and content is not None and key not in self.meta:
                self.meta[key] = content
        elif tag == "a":
            href = attributes.get("href") or ""
            if href.startswith("http") and "instagram.com" not in href:
                self.external_links.append(href)


def parse_count(raw: str) -> Optional[int]:
    """Parse "1,234", "1.2K" or "3M" into an int."""
    value = raw.strip().replace(" ", "")
    multiplier = 1
    if value[-1:].lower() == "k":
        multiplier, value = 1_000, value[:-1]
    elif value[-1:].lower() == "m":
        multiplier, value = 1_000_000, value[:-1]
    if multiplier > 1:
        value = value.replace(",", ".")
        try:
            return int(float(value) * multiplier)
        except ValueError:
            return None
    digits = value.replace(",", "").replace(".", "")
    return int(digits) if digits.isdigit() else None


def _extract_count(description: str, label: str) -> Optional[int]:
    match = re.search(_COUNT_PATTERN.format(label=label), description, flags=re.IGNORECASE)
    return parse_count(match.group(1)) if match else None


def parse_profile_html(handle: str, html: str) -> ProfileData:
    parser = _MetaTagParser()
    parser.feed(html)
    meta = parser.meta

    profile = ProfileData(username=handle)

    title = meta.get("og:title", "")
    if title:
        profile.full_name = title.split(" (")[0].strip() or None

    description = meta.get("og:description", "")
    if description:
        profile.followers_count = _extract_count(description, "Followers")
        profile.following_count = _extract_count(description, "Following")
        profile.posts_count = _extract_count(description, "Posts")
        # "... Posts - See Instagram photos and videos from Name (@handle)" carries no bio;
        # a quoted part after the dash does.
        bio_match = re.search(r'"(.+)"', description, flags=re.DOTALL)
        if bio_match:
            profile.bio = bio_match.group(1).strip()

    profile.profile_image_url = meta.get("og:image")
    if parser.external_links:
        profile.website_url = parser.external_links[0]

    bio_text = profile.bio or ""
    profile.hashtags = list(dict.fromkeys(_HASHTAG_PATTERN.findall(bio_text)))
    location = _LOCATION_PATTERN.search(bio_text)
    if location:
        profile.location = location.group(1).strip()
    return profile


class InstagramScraper:
    """Reads the public Instagram profile page and extracts its og: metadata."""

    def __init__(self, http_client: httpx.AsyncClient, timeout_seconds: float = 15.0):
        self._http = http_client
        self.timeout_seconds = timeout_seconds

    async def fetch_profile(self, handle: str) -> ProfileData:
        handle = (handle or "").lstrip("@").strip().lower()
        if not is_valid_handle_format(handle):
            raise ScrapingError(f"invalid instagram handle: {handle!r}")

        try:
            response = await self._http.get(
                PROFILE_URL.format(handle=handle),
                headers={"User-Agent": USER_AGENT, "Accept-Language": "pt-BR,pt;q=0.9,en;q=0.8"},
                timeout=self.timeout_seconds,
                follow_redirects=True,
            )
        except httpx.HTTPError as exc:
            raise ScrapingError(f"instagram request failed: {exc!r}") from exc

        if response.status_code != 200:
            raise ScrapingError(f"instagram returned status {response.status_code}")

        profile = parse_profile_html(handle, response.text)
        if profile.is_empty:
            raise ScrapingError("instagram page had no public profile metadata")

        logger.info(
            "Instagram profile scraped",
            extra={
                "context": {
                    "handle": handle,
                    "followers": profile.followers_count,
                    "posts": profile.posts_count,
                    "hashtags": len(profile.hashtags),
                }
            },
        )
        return profile
