"""Producer side: title first, then every body node in document order."""

from __future__ import annotations

import logging
import time
from typing import Iterable, Iterator, Optional

from .errors import TitleTranslationError, UnknownRulesetError
from .html_parser import RULESET_VERSION, segment_html
from .protocol import (
    ContentChunk,
    ErrorSignal,
    Metadata,
    PreservedReference,
    StreamEnvelope,
    TranslationRequest,
    encode_envelope,
)
from .translator import (
    BaseTranslator,
    RateLimiter,
    describe_dialect,
    describe_language,
    describe_level,
    translate_node,
)


def check_ruleset(version: Optional[str], logger: Optional[logging.Logger] = None) -> None:
    if version is None:
        if logger:
            logger.warning("Request did not declare a segmentation ruleset; assuming %s.", RULESET_VERSION)
        return
    if version != RULESET_VERSION:
        raise UnknownRulesetError(version, RULESET_VERSION)


def translate_article_title(
    title: str,
    translator: BaseTranslator,
    language: str,
    level: str,
    dialect: str = "",
    max_retries: int = 0,
    retry_backoff: float = 2.0,
    rate_limiter: Optional[RateLimiter] = None,
    logger: Optional[logging.Logger] = None,
) -> str:
    """Translate the title with a single non-streaming call. Empty output keeps the original title."""
    if not title.strip():
        return title

    attempts = max(1, max_retries + 1)
    for attempt in range(attempts):
        if rate_limiter:
            rate_limiter.wait()
        try:
            translated = translator.translate_title(title, language, level, dialect).strip()
            break
        except Exception as exc:  # noqa: BLE001 - provider failures are opaque
            if logger:
                logger.warning("Title attempt %s/%s failed: %s", attempt + 1, attempts, exc)
            if attempt < attempts - 1:
                time.sleep(retry_backoff * (2**attempt))
                continue
            raise TitleTranslationError(f"Title translation failed: {exc}") from exc

    if not translated:
        if logger:
            logger.warning("Empty title translation; keeping original title %r.", title)
        return title
    return translated


def open_translation_stream(
    request: TranslationRequest,
    translator: BaseTranslator,
    max_retries: int = 2,
    retry_backoff: float = 2.0,
    rate_limiter: Optional[RateLimiter] = None,
    logger: Optional[logging.Logger] = None,
) -> Iterator[StreamEnvelope]:
    """
    Validate the request and translate the title eagerly, then return the
    envelope iterator for the body.

    Title failures and ruleset mismatches raise here, before a single envelope
    exists, so callers can still answer with a plain error response.
    """
    check_ruleset(request.ruleset_version, logger)

    language = describe_language(request.target_language)
    level = describe_level(request.reading_age)
    dialect = describe_dialect(request.target_language, request.region)
    if logger:
        logger.info(
            "Translating %r to %s (%s)%s",
            request.article.title,
            language,
            level,
            f", dialect {dialect}" if dialect else "",
        )

    title = translate_article_title(
        request.article.title,
        translator,
        language,
        level,
        dialect,
        max_retries=max_retries,
        retry_backoff=retry_backoff,
        rate_limiter=rate_limiter,
        logger=logger,
    )

    def _body() -> Iterator[StreamEnvelope]:
        yield Metadata(title=title, language_code=request.target_language)

        nodes = segment_html(request.article.content)
        if logger:
            logger.info(
                "Segmented body into %s nodes (%s preserved).",
                len(nodes),
                sum(1 for n in nodes if n.preserved),
            )

        failures = 0
        for node in nodes:
            if node.preserved:
                yield PreservedReference(node.key)
                continue
            for event in translate_node(
                node.markup,
                translator,
                language,
                level,
                dialect,
                max_retries=max_retries,
                retry_backoff=retry_backoff,
                rate_limiter=rate_limiter,
                logger=logger,
            ):
                if isinstance(event, ErrorSignal):
                    failures += 1
                yield event

        if logger:
            logger.info("Stream complete: %s nodes, %s failed.", len(nodes), failures)

    return _body()


def iter_ndjson(envelopes: Iterable[StreamEnvelope]) -> Iterator[str]:
    for envelope in envelopes:
        yield encode_envelope(envelope)


def produce_stream(
    request: TranslationRequest,
    translator: BaseTranslator,
    **kwargs,
) -> Iterator[str]:
    """Protocol lines for a request; see ``open_translation_stream``."""
    return iter_ndjson(open_translation_stream(request, translator, **kwargs))
