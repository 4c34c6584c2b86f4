import re
import unicodedata
from typing import Iterable, Optional

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
HANDLE_PATTERN = re.compile(r"^[a-z0-9._]{1,30}$")

MIN_NAME_LENGTH = 2

SKIP_WORDS = {"skip", "pular", "pula", "pule"}
NO_HANDLE_PHRASES = (
    "nao tenho",
    "não tenho",
    "don't have",
    "dont have",
    "do not have",
    "sem instagram",
    "no instagram",
)
AFFIRMATIVE_TOKENS = {"sim", "s", "yes", "y", "claro", "pode", "ok", "okay", "quero", "autorizo", "bora"}

_EDGE_PUNCTUATION = " \t\r\n.,;:!?¡¿\"'()[]{}"


def normalize_for_matching(text: str) -> str:
    text = unicodedata.normalize("NFKC", text or "")
    return " ".join(text.strip().lower().split())


def is_reset_command(text: str, keywords: Iterable[str]) -> bool:
    """Whole-message, case-insensitive match against the configured reset keywords."""
    normalized = normalize_for_matching(text).strip(_EDGE_PUNCTUATION)
    if not normalized:
        return False
    return normalized in {normalize_for_matching(keyword) for keyword in keywords}


def validate_name(text: str) -> Optional[str]:
    name = " ".join((text or "").split())
    if len(name) < MIN_NAME_LENGTH:
        return None
    return name


def is_skip(text: str) -> bool:
    return normalize_for_matching(text).strip(_EDGE_PUNCTUATION) in SKIP_WORDS


def validate_email(text: str) -> Optional[str]:
    email = (text or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        return None
    return email


def declines_handle(text: str) -> bool:
    if is_skip(text):
        return True
    normalized = normalize_for_matching(text)
    return any(phrase in normalized for phrase in NO_HANDLE_PHRASES)


def normalize_handle(text: str) -> Optional[str]:
    """Strip a leading @ (and profile URL noise); None when nothing is left."""
    handle = (text or "").strip().lower()
    handle = re.sub(r"^(https?://)?(www\.)?instagram\.com/", "", handle)
    handle = handle.strip("/ ")
    handle = handle.lstrip("@").strip()
    if not handle:
        return None
    return handle


def is_valid_handle_format(handle: str) -> bool:
    return bool(HANDLE_PATTERN.match(handle))


def is_affirmative(text: str) -> bool:
    """True when the answer starts with an affirmative token ("sim", "Sim, pode!", "yes please")."""
    normalized = normalize_for_matching(text)
    if not normalized:
        return False
    first = re.split(r"[\s,.;:!?]+", normalized, maxsplit=1)[0]
    return first in AFFIRMATIVE_TOKENS
