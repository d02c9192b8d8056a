"""Consumer side: decode the envelope stream and rebuild the translated article."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

import httpx

from .errors import MalformedEnvelopeError, StreamTransportError, TranslationCancelled
from .html_parser import RULESET_VERSION, build_preserved_registry, visible_text
from .protocol import (
    MEDIA_TYPE,
    ArticlePayload,
    ContentChunk,
    ErrorSignal,
    LineBuffer,
    Metadata,
    PreservedReference,
    StreamEnvelope,
    TranslationRequest,
    decode_envelope,
)
from .readiness import DEFAULT_WORD_THRESHOLD, is_ready_for_early_consumption
from .utils import shorten


TRANSLATE_PATH = "/translate-article"
MISSING_REFERENCE_MARKER = "<!-- ERROR: Preserved content for {key} not found -->"


class AttemptState(str, Enum):
    IDLE = "idle"
    TITLE_TRANSLATING = "title_translating"
    STREAMING_BODY = "streaming_body"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATES = frozenset({AttemptState.TITLE_TRANSLATING, AttemptState.STREAMING_BODY})


class CancellationToken:
    """One per attempt. ``cancel`` flags the attempt and runs the registered close hooks."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def on_cancel(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TranslationCancelled("Translation cancelled.")


class Reassembler:
    """
    Incrementally decodes protocol text and accumulates the translated article.

    Preserved references are resolved against the locally built registry; a
    missing key leaves a visible HTML comment instead of failing. Malformed
    lines are logged and skipped.
    """

    def __init__(self, registry: Dict[str, str], logger: Optional[logging.Logger] = None):
        self.registry = registry
        self.logger = logger
        self.accumulated_markup = ""
        self.title: Optional[str] = None
        self.language_code: Optional[str] = None
        self.notices: List[str] = []
        self.missing_references: List[str] = []
        self.malformed_lines = 0
        self._lines = LineBuffer()

    def lines(self, text: str) -> List[str]:
        return self._lines.feed(text)

    def apply_line(self, line: str) -> Optional[StreamEnvelope]:
        try:
            envelope = decode_envelope(line)
        except MalformedEnvelopeError as exc:
            self.malformed_lines += 1
            if self.logger:
                self.logger.warning("Skipping malformed stream line %r: %s", shorten(line), exc)
            return None
        self.apply(envelope)
        return envelope

    def apply(self, envelope: StreamEnvelope) -> None:
        if isinstance(envelope, Metadata):
            if envelope.title:
                self.title = envelope.title
            if envelope.language_code:
                self.language_code = envelope.language_code
        elif isinstance(envelope, ContentChunk):
            self.accumulated_markup += envelope.text
        elif isinstance(envelope, PreservedReference):
            markup = self.registry.get(envelope.key)
            if markup is None:
                self.missing_references.append(envelope.key)
                if self.logger:
                    self.logger.warning("Preserved content for %s not found locally.", envelope.key)
                markup = MISSING_REFERENCE_MARKER.format(key=envelope.key)
            self.accumulated_markup += markup
        elif isinstance(envelope, ErrorSignal):
            notice = envelope.details or envelope.message
            self.notices.append(notice)
            if self.logger:
                self.logger.warning("Producer reported: %s", notice)

    def feed(self, text: str) -> List[StreamEnvelope]:
        applied: List[StreamEnvelope] = []
        for line in self.lines(text):
            envelope = self.apply_line(line)
            if envelope is not None:
                applied.append(envelope)
        return applied

    def trailing_line(self) -> Optional[str]:
        """End of stream: a trailing line without newline is complete by definition."""
        return self._lines.flush()

    def close(self) -> List[StreamEnvelope]:
        rest = self.trailing_line()
        if rest is None:
            return []
        envelope = self.apply_line(rest)
        return [envelope] if envelope is not None else []

    @property
    def text_content(self) -> str:
        return visible_text(self.accumulated_markup)


@dataclass
class TranslationAttempt:
    """One translation request lifecycle on the consumer side."""

    request: TranslationRequest
    reassembler: Reassembler
    token: CancellationToken = field(default_factory=CancellationToken)
    state: AttemptState = AttemptState.IDLE
    error: Optional[str] = None
    ready_for_narration: bool = False

    @property
    def accumulated_markup(self) -> str:
        return self.reassembler.accumulated_markup

    @property
    def title(self) -> str:
        return self.reassembler.title or ""

    @property
    def language_code(self) -> Optional[str]:
        return self.reassembler.language_code

    @property
    def notices(self) -> List[str]:
        return self.reassembler.notices

    @property
    def text_content(self) -> str:
        return self.reassembler.text_content

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    @property
    def cancellation_requested(self) -> bool:
        return self.token.cancelled

    def cancel(self) -> None:
        self.token.cancel()


def new_attempt(
    article: ArticlePayload,
    target_language: str,
    reading_age: str,
    region: Optional[str] = None,
    logger: Optional[logging.Logger] = None,
) -> TranslationAttempt:
    """Build the local registry and a fresh attempt for one translation request."""
    registry = build_preserved_registry(article.content)
    if logger:
        logger.info("Stored %s preserved nodes locally.", len(registry))
    request = TranslationRequest(
        article=article,
        target_language=target_language,
        reading_age=reading_age,
        region=region,
        ruleset_version=RULESET_VERSION,
    )
    return TranslationAttempt(request=request, reassembler=Reassembler(registry, logger=logger))


AttemptListener = Callable[[TranslationAttempt], None]


def _after_envelope(
    attempt: TranslationAttempt,
    envelope: StreamEnvelope,
    word_threshold: int,
    logger: Optional[logging.Logger],
) -> None:
    if isinstance(envelope, (Metadata, ContentChunk, PreservedReference)):
        if attempt.state is AttemptState.TITLE_TRANSLATING:
            attempt.state = AttemptState.STREAMING_BODY
    if attempt.state is not AttemptState.STREAMING_BODY or attempt.ready_for_narration:
        return
    if isinstance(envelope, (ContentChunk, PreservedReference)) and is_ready_for_early_consumption(
        attempt.accumulated_markup, word_threshold
    ):
        attempt.ready_for_narration = True
        if logger:
            logger.info("Enough translated text for the first narration chunk.")


def consume_stream(
    attempt: TranslationAttempt,
    chunks: Iterable[str],
    word_threshold: int = DEFAULT_WORD_THRESHOLD,
    listener: Optional[AttemptListener] = None,
    logger: Optional[logging.Logger] = None,
) -> TranslationAttempt:
    """
    Drive ``attempt`` through its states while reading ``chunks`` (raw text reads).

    Ends in COMPLETED, FAILED (partial markup kept, ``error`` set) or
    CANCELLED (no error). Nothing is appended once cancellation is seen.
    """
    if attempt.state is AttemptState.IDLE:
        attempt.state = AttemptState.TITLE_TRANSLATING
    reassembler = attempt.reassembler
    source = iter(chunks)

    def _apply(line: str) -> None:
        attempt.token.raise_if_cancelled()
        envelope = reassembler.apply_line(line)
        if envelope is None:
            return
        _after_envelope(attempt, envelope, word_threshold, logger)
        if listener:
            listener(attempt)

    try:
        attempt.token.raise_if_cancelled()
        for text in source:
            attempt.token.raise_if_cancelled()
            for line in reassembler.lines(text):
                _apply(line)
        attempt.token.raise_if_cancelled()
        rest = reassembler.trailing_line()
        if rest is not None:
            _apply(rest)
        if reassembler.title is None and attempt.state is AttemptState.TITLE_TRANSLATING:
            raise StreamTransportError("Stream ended before any translation was received.")
    except TranslationCancelled:
        attempt.state = AttemptState.CANCELLED
        if logger:
            logger.info("Translation cancelled.")
    except Exception as exc:  # noqa: BLE001 - every other failure is surfaced on the attempt
        if attempt.token.cancelled:
            attempt.state = AttemptState.CANCELLED
            if logger:
                logger.info("Translation cancelled (%s).", type(exc).__name__)
        else:
            attempt.state = AttemptState.FAILED
            attempt.error = str(exc) or "An unknown error occurred during translation."
            if logger:
                logger.error("Translation failed: %s", attempt.error)
    else:
        attempt.state = AttemptState.COMPLETED
        if logger:
            logger.info(
                "Translation finished: %s chars, %s notices.",
                len(attempt.accumulated_markup),
                len(attempt.notices),
            )
    finally:
        close = getattr(source, "close", None)
        if close is not None:
            close()

    if listener:
        listener(attempt)
    return attempt


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ("details", "error", "detail", "message"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
    return f"HTTP error! status: {response.status_code}"


class TranslationClient:
    """
    Consumer session against a producer server. At most one attempt is active:
    starting a new one cancels the previous one first.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:8000",
        timeout: float = 120.0,
        word_threshold: int = DEFAULT_WORD_THRESHOLD,
        http_client: Optional[httpx.Client] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self._http = http_client or httpx.Client(base_url=base_url, timeout=timeout)
        self.word_threshold = word_threshold
        self.logger = logger
        self._lock = threading.Lock()
        self._current: Optional[TranslationAttempt] = None

    @property
    def current(self) -> Optional[TranslationAttempt]:
        return self._current

    def start(
        self,
        article: ArticlePayload,
        target_language: str,
        reading_age: str,
        region: Optional[str] = None,
    ) -> TranslationAttempt:
        attempt = new_attempt(article, target_language, reading_age, region, logger=self.logger)
        with self._lock:
            previous, self._current = self._current, attempt
        if previous is not None and not previous.cancellation_requested:
            if self.logger and previous.is_active:
                self.logger.info("Cancelling previous translation attempt.")
            previous.cancel()
        return attempt

    def _read(self, attempt: TranslationAttempt):
        with self._http.stream(
            "POST",
            TRANSLATE_PATH,
            json=attempt.request.to_payload(),
            headers={"Accept": MEDIA_TYPE},
        ) as response:
            attempt.token.on_cancel(response.close)
            if response.status_code >= 400:
                response.read()
                raise StreamTransportError(_error_message(response), response.status_code)
            for text in response.iter_text():
                yield text

    def run(self, attempt: TranslationAttempt, listener: Optional[AttemptListener] = None) -> TranslationAttempt:
        return consume_stream(
            attempt,
            self._read(attempt),
            word_threshold=self.word_threshold,
            listener=listener,
            logger=self.logger,
        )

    def translate(
        self,
        article: ArticlePayload,
        target_language: str,
        reading_age: str,
        region: Optional[str] = None,
        listener: Optional[AttemptListener] = None,
    ) -> TranslationAttempt:
        if self.logger:
            logger_region = region or "default"
            self.logger.info("Starting translation to %s (%s), region: %s", target_language, reading_age, logger_region)
        return self.run(self.start(article, target_language, reading_age, region), listener=listener)

    def cancel(self) -> None:
        with self._lock:
            attempt = self._current
        if attempt is not None:
            attempt.cancel()

    def close(self) -> None:
        self.cancel()
        self._http.close()

    def __enter__(self) -> "TranslationClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
