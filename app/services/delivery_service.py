"""Ordered, retried delivery of long texts as several WhatsApp messages."""

import asyncio
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Iterable, Protocol

from app.logging_config import get_logger
from app.services.result import Result

logger = get_logger("delivery")

DEFAULT_MAX_LENGTH = 1000

# Coarsest boundary first: paragraphs, sentences, words. Each pattern has one
# capturing group so re.split keeps the separators.
_SPLITTERS = (
    re.compile(r"(\n[^\S\n]*\n\s*)"),
    re.compile(r"(?<=[.!?])(\s+)"),
    re.compile(r"(\s+)"),
)


def _split_level(text: str, max_length: int, level: int) -> list[tuple[str, str]]:
    if len(text) <= max_length:
        return [(text, "")]

    if level >= len(_SPLITTERS):
        return [(text[start : start + max_length], "") for start in range(0, len(text), max_length)]

    parts = _SPLITTERS[level].split(text)
    pieces = parts[0::2]
    separators = parts[1::2] + [""]

    chunks: list[tuple[str, str]] = []
    current = None
    pending_sep = ""
    for piece, sep in zip(pieces, separators):
        if len(piece) > max_length:
            if current is not None:
                chunks.append((current, pending_sep))
                current = None
            sub_chunks = _split_level(piece, max_length, level + 1)
            last_text, _ = sub_chunks[-1]
            sub_chunks[-1] = (last_text, sep)
            chunks.extend(sub_chunks)
            continue

        if current is None:
            current, pending_sep = piece, sep
        elif len(current) + len(pending_sep) + len(piece) <= max_length:
            current, pending_sep = current + pending_sep + piece, sep
        else:
            chunks.append((current, pending_sep))
            current, pending_sep = piece, sep

    if current is not None:
        chunks.append((current, pending_sep))
    return chunks


def split_message_with_separators(text: str, max_length: int = DEFAULT_MAX_LENGTH) -> list[tuple[str, str]]:
    """Split text into (chunk, separator) pairs.

    Every chunk is at most max_length characters and joining each chunk with
    the separator that followed it gives back the original text.
    """
    if max_length < 1:
        raise ValueError("max_length must be positive")
    return _split_level(text or "", max_length, 0)


def join_chunks(pairs: Iterable[tuple[str, str]]) -> str:
    return "".join(chunk + sep for chunk, sep in pairs)


def split_message(text: str, max_length: int = DEFAULT_MAX_LENGTH) -> list[str]:
    """Chunks ready to send: boundary whitespace is dropped, blank chunks are skipped.

    Blank text gives an empty list.
    """
    pairs = split_message_with_separators(text, max_length)
    return [chunk.strip() for chunk, _ in pairs if chunk.strip()]


class TextSender(Protocol):
    async def send_text(self, recipient: str, text: str) -> Result[str]: ...


@dataclass
class DeliveryReport:
    recipient: str
    total: int = 0
    sent: int = 0
    attempts: int = 0
    failed: list[int] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def merge(self, other: "DeliveryReport") -> "DeliveryReport":
        offset = self.total
        self.total += other.total
        self.sent += other.sent
        self.attempts += other.attempts
        self.failed.extend(offset + index for index in other.failed)
        self.errors.extend(other.errors)
        return self


class DeliveryService:
    def __init__(
        self,
        sender: TextSender,
        *,
        max_length: int = DEFAULT_MAX_LENGTH,
        chunk_delay_seconds: float = 0.7,
        max_attempts: int = 3,
        retry_backoff_seconds: float = 2.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.sender = sender
        self.max_length = max_length
        self.chunk_delay_seconds = chunk_delay_seconds
        self.max_attempts = max(1, max_attempts)
        self.retry_backoff_seconds = retry_backoff_seconds
        self._sleep = sleep

    def backoff_for(self, attempt: int) -> float:
        return self.retry_backoff_seconds * (2 ** (attempt - 1))

    def worst_case_seconds(self, chunk_count: int, send_timeout_seconds: float) -> float:
        """Upper bound for delivering chunk_count chunks when every attempt times out."""
        backoff = sum(self.backoff_for(attempt) for attempt in range(1, self.max_attempts))
        per_chunk = self.max_attempts * send_timeout_seconds + backoff
        return chunk_count * per_chunk + max(chunk_count - 1, 0) * self.chunk_delay_seconds

    async def _send_chunk(self, recipient: str, chunk: str, label: str) -> tuple[Result[str], int]:
        attempt = 1
        while True:
            result = await self.sender.send_text(recipient, chunk)
            if result.ok:
                return result, attempt
            if not result.is_transient:
                logger.error(
                    "Outbound send failed permanently",
                    extra={"context": {"to": recipient, "chunk": label, "error_code": result.error_code}},
                )
                return result, attempt
            if attempt >= self.max_attempts:
                logger.error(
                    "Outbound send failed after retries",
                    extra={
                        "context": {
                            "to": recipient,
                            "chunk": label,
                            "attempts": attempt,
                            "error_code": result.error_code,
                        }
                    },
                )
                return result, attempt

            delay = self.backoff_for(attempt)
            logger.warning(
                "Outbound send retry",
                extra={
                    "context": {
                        "to": recipient,
                        "chunk": label,
                        "attempt": attempt + 1,
                        "max_attempts": self.max_attempts,
                        "delay_seconds": delay,
                        "error_code": result.error_code,
                    }
                },
            )
            await self._sleep(delay)
            attempt += 1

    async def deliver(self, recipient: str, text: str) -> DeliveryReport:
        """Send text as ordered chunks. A failed chunk does not stop the ones after it."""
        chunks = split_message(text, self.max_length)
        report = DeliveryReport(recipient=recipient, total=len(chunks))
        if not chunks:
            logger.warning("Nothing to deliver: empty text", extra={"context": {"to": recipient}})
            return report

        for index, chunk in enumerate(chunks):
            label = f"{index + 1}/{len(chunks)}"
            result, attempts = await self._send_chunk(recipient, chunk, label)
            report.attempts += attempts
            if result.ok:
                report.sent += 1
            else:
                report.failed.append(index)
                report.errors.append(result.error_code or "unknown")

            if index < len(chunks) - 1 and self.chunk_delay_seconds > 0:
                await self._sleep(self.chunk_delay_seconds)

        if report.ok:
            logger.info(f"Delivered {report.sent} message(s)", extra={"context": {"to": recipient}})
        return report

    async def deliver_many(self, recipient: str, texts: Iterable[str]) -> DeliveryReport:
        report = DeliveryReport(recipient=recipient)
        for position, text in enumerate(texts):
            if position > 0 and self.chunk_delay_seconds > 0:
                await self._sleep(self.chunk_delay_seconds)
            report.merge(await self.deliver(recipient, text))
        return report
