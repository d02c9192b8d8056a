"""Newline-delimited JSON envelopes exchanged between producer and consumer."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import List, Optional, Union

from .errors import MalformedEnvelopeError


MEDIA_TYPE = "application/x-ndjson"

METADATA_FIELD = "metadata"
CONTENT_FIELD = "contentChunk"
PRESERVED_FIELD = "preservedRef"
ERROR_FIELD = "error"
DETAILS_FIELD = "details"


@dataclass(frozen=True)
class Metadata:
    title: Optional[str]
    language_code: Optional[str]


@dataclass(frozen=True)
class ContentChunk:
    text: str


@dataclass(frozen=True)
class PreservedReference:
    key: str


@dataclass(frozen=True)
class ErrorSignal:
    message: str
    details: Optional[str] = None


StreamEnvelope = Union[Metadata, ContentChunk, PreservedReference, ErrorSignal]


def envelope_to_dict(envelope: StreamEnvelope) -> dict:
    if isinstance(envelope, Metadata):
        return {METADATA_FIELD: {"title": envelope.title, "lang": envelope.language_code}}
    if isinstance(envelope, ContentChunk):
        return {CONTENT_FIELD: envelope.text}
    if isinstance(envelope, PreservedReference):
        return {PRESERVED_FIELD: envelope.key}
    if isinstance(envelope, ErrorSignal):
        payload = {ERROR_FIELD: envelope.message}
        if envelope.details:
            payload[DETAILS_FIELD] = envelope.details
        return payload
    raise TypeError(f"Not a stream envelope: {envelope!r}")


def encode_envelope(envelope: StreamEnvelope) -> str:
    """Serialise one envelope as a single newline-terminated line."""
    return json.dumps(envelope_to_dict(envelope), ensure_ascii=False) + "\n"


def _optional_str(value: object) -> Optional[str]:
    return value if isinstance(value, str) else None


def decode_envelope(line: str) -> StreamEnvelope:
    """Parse one protocol line. Raises MalformedEnvelopeError on anything unrecognised."""
    try:
        data = json.loads(line)
    except json.JSONDecodeError as exc:
        raise MalformedEnvelopeError(f"Invalid JSON in stream line: {exc}") from exc
    if not isinstance(data, dict):
        raise MalformedEnvelopeError("Stream line is not a JSON object.")

    if data.get(ERROR_FIELD):
        return ErrorSignal(
            message=str(data[ERROR_FIELD]),
            details=_optional_str(data.get(DETAILS_FIELD)),
        )
    meta = data.get(METADATA_FIELD)
    if isinstance(meta, dict):
        return Metadata(
            title=_optional_str(meta.get("title")),
            language_code=_optional_str(meta.get("lang")),
        )
    ref = data.get(PRESERVED_FIELD)
    if isinstance(ref, str) and ref:
        return PreservedReference(ref)
    chunk = data.get(CONTENT_FIELD)
    if isinstance(chunk, str):
        return ContentChunk(chunk)
    raise MalformedEnvelopeError(f"Unrecognised envelope keys: {sorted(data)}")


class LineBuffer:
    """
    Reassembles logical lines from arbitrarily split network reads.

    Only complete (newline-terminated) lines are returned by ``feed``; the
    remainder waits for the next read or for ``flush`` at end of stream.
    """

    def __init__(self) -> None:
        self._pending = ""

    @property
    def pending(self) -> str:
        return self._pending

    def feed(self, text: str) -> List[str]:
        self._pending += text
        lines: List[str] = []
        while True:
            idx = self._pending.find("\n")
            if idx < 0:
                break
            line = self._pending[:idx].rstrip("\r")
            self._pending = self._pending[idx + 1 :]
            if line.strip():
                lines.append(line)
        return lines

    def flush(self) -> Optional[str]:
        rest, self._pending = self._pending, ""
        return rest if rest.strip() else None


@dataclass
class ArticlePayload:
    """The article as the consumer holds it; ``content`` is the body markup."""

    title: str
    content: str
    text_content: str = ""
    excerpt: Optional[str] = None
    byline: Optional[str] = None
    site_name: Optional[str] = None
    lang: Optional[str] = None
    published_time: Optional[str] = None

    def to_payload(self) -> dict:
        return {
            "title": self.title,
            "content": self.content,
            "textContent": self.text_content,
            "excerpt": self.excerpt,
            "byline": self.byline,
            "siteName": self.site_name,
            "lang": self.lang,
            "publishedTime": self.published_time,
        }

    @classmethod
    def from_payload(cls, data: dict) -> "ArticlePayload":
        return cls(
            title=data.get("title") or "",
            content=data.get("content") or "",
            text_content=data.get("textContent") or "",
            excerpt=data.get("excerpt"),
            byline=data.get("byline"),
            site_name=data.get("siteName"),
            lang=data.get("lang"),
            published_time=data.get("publishedTime"),
        )


@dataclass
class TranslationRequest:
    article: ArticlePayload
    target_language: str
    reading_age: str
    region: Optional[str] = None
    ruleset_version: Optional[str] = None

    def to_payload(self) -> dict:
        payload = {
            "articleContent": self.article.to_payload(),
            "targetLanguage": self.target_language,
            "readingAge": self.reading_age,
            "rulesetVersion": self.ruleset_version,
        }
        if self.region:
            payload["region"] = self.region
        return payload
