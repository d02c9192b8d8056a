from __future__ import annotations

import logging
import os
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Protocol, Union

from .errors import MissingApiKeyError, ProviderConfigurationError, TranslationProviderError
from .html_parser import visible_text
from .protocol import ContentChunk, ErrorSignal
from .utils import shorten


SYSTEM_PROMPT_HTML_TRANSLATION = """\
You are a professional translation engine adapting news articles for adult language learners.
You WILL translate the human-readable text of an HTML fragment while PRESERVING all HTML tags and attributes exactly as they are.
You MUST NOT modify attribute values (href, src, id, class, data-*, style).
Keep inline tags (<em>, <strong>, <a>, <span>, <img>, etc.) and their positions unchanged.
Do not add or remove tags. Return only the translated HTML fragment (no explanations, no code fences)."""

USER_PROMPT_TEMPLATE = """\
Adapt the following HTML fragment into {language} {dialect} for a reader at {level}.
This is not a literal translation: keep the tone, seriousness and meaning of the original while
using vocabulary and sentence structures that feel natural to native speakers.
Simplify complex vocabulary and grammar without making the text childish; the reader is an adult
English speaker learning {language}. Keep some moderately challenging words.
Do NOT translate proper nouns without an established equivalent, technical terms being explained,
or words that are themselves the subject of discussion.

HTML:
{html}
"""

TITLE_PROMPT_TEMPLATE = """\
Adapt the following article title from English into {language} {dialect} for readers at {level}.

Create a title that:
1. Captures the essence and meaning of the original
2. Sounds natural to native {language} speakers
3. Uses appropriate vocabulary for {level}
4. Preserves the style and tone of the original

Original title: "{title}"

Return only the translated title without any additional text, explanations, or quotation marks."""


LANGUAGE_NAMES: Dict[str, str] = {
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "it": "Italian",
    "pt": "Portuguese",
    "zh": "Chinese",
    "ja": "Japanese",
    "ko": "Korean",
    "ru": "Russian",
    "ar": "Arabic",
}

READING_LEVELS: Dict[str, str] = {
    "beginner": "elementary school level (8-11 years old)",
    "intermediate": "middle school level (12-15 years old)",
    "advanced": "high school level (16+ years old)",
}

DIALECTS: Dict[str, Dict[str, str]] = {
    "es": {
        "es": "from Spain (European Spanish)",
        "mx": "from Mexico (Mexican Spanish)",
        "co": "from Colombia (Colombian Spanish)",
        "ar": "from Argentina (Argentine Spanish)",
        "pe": "from Peru (Peruvian Spanish)",
        "cl": "from Chile (Chilean Spanish)",
    },
    "fr": {
        "fr": "from France (European French)",
        "ca": "from Canada (Canadian French)",
        "be": "from Belgium (Belgian French)",
        "ch": "from Switzerland (Swiss French)",
    },
    "de": {
        "de": "from Germany (Standard German)",
        "at": "from Austria (Austrian German)",
        "ch": "from Switzerland (Swiss German)",
    },
    "it": {
        "it": "from Italy (Standard Italian)",
        "ch": "from Switzerland (Swiss Italian)",
    },
    "pt": {
        "pt": "from Portugal (European Portuguese)",
        "br": "from Brazil (Brazilian Portuguese)",
    },
}


def describe_language(code: str) -> str:
    return LANGUAGE_NAMES.get(code.lower(), code)


def describe_level(reading_age: str) -> str:
    return READING_LEVELS.get(reading_age.lower(), reading_age)


def describe_dialect(code: str, region: Optional[str]) -> str:
    """Dialect hint for a language/region pair; empty when the pair is unknown."""
    if not region:
        return ""
    return DIALECTS.get(code.lower(), {}).get(region.lower(), "")


class BaseTranslator(Protocol):
    def stream_html(
        self,
        html_fragment: str,
        language: str,
        level: str,
        dialect: str = "",
    ) -> Iterator[str]:
        ...

    def translate_title(
        self,
        title: str,
        language: str,
        level: str,
        dialect: str = "",
    ) -> str:
        ...


@dataclass
class OpenAIConfig:
    model: str = "gpt-4.1-mini"
    temperature: float = 0.3
    max_output_tokens: int = 4000


class RateLimiter:
    """Simple thread-safe rate limiter (requests per minute)."""

    def __init__(self, requests_per_minute: Optional[int] = None):
        self.requests_per_minute = requests_per_minute or 0
        self.interval = 60.0 / self.requests_per_minute if self.requests_per_minute > 0 else 0.0
        self._lock = threading.Lock()
        self._last_ts = 0.0

    def wait(self) -> None:
        if self.interval <= 0:
            return
        with self._lock:
            now = time.monotonic()
            delta = now - self._last_ts
            if delta < self.interval:
                time.sleep(self.interval - delta)
            self._last_ts = time.monotonic()


class OpenAITranslator:
    """
    OpenAI translator that streams HTML fragments through chat completions.

    Requires:
      - `openai` python package
      - OPENAI_API_KEY in env or provided.
    """

    def __init__(self, api_key: Optional[str] = None, cfg: Optional[OpenAIConfig] = None):
        self.api_key = api_key or os.getenv("OPENAI_API_KEY", "")
        if not self.api_key:
            raise MissingApiKeyError(
                "OPENAI_API_KEY missing: set the environment variable or add it to your .env."
            )
        self.cfg = cfg or OpenAIConfig()

        from openai import OpenAI  # type: ignore

        self._client = OpenAI(api_key=self.api_key)

    def stream_html(
        self,
        html_fragment: str,
        language: str,
        level: str,
        dialect: str = "",
    ) -> Iterator[str]:
        user_prompt = USER_PROMPT_TEMPLATE.format(
            language=language,
            dialect=dialect,
            level=level,
            html=html_fragment,
        )
        stream = self._client.chat.completions.create(
            model=self.cfg.model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT_HTML_TRANSLATION},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.cfg.temperature,
            max_tokens=self.cfg.max_output_tokens,
            stream=True,
        )
        try:
            for event in stream:
                if not event.choices:
                    continue
                content = getattr(event.choices[0].delta, "content", None)
                if content:
                    yield content
        finally:
            stream.close()

    def translate_title(
        self,
        title: str,
        language: str,
        level: str,
        dialect: str = "",
    ) -> str:
        prompt = TITLE_PROMPT_TEMPLATE.format(language=language, dialect=dialect, level=level, title=title)
        resp = self._client.chat.completions.create(
            model=self.cfg.model,
            messages=[{"role": "user", "content": prompt}],
            temperature=self.cfg.temperature,
            max_tokens=200,
        )
        if not resp.choices:
            raise TranslationProviderError("Title request returned no choices.")
        content = resp.choices[0].message.content or ""
        return clean_title(content)


_TOKEN_RE = re.compile(r"<[^>]*>|[^<]+")


class DummyTranslator:
    """Offline translator for testing/dev. Streams the fragment back unchanged, one token at a time."""

    def stream_html(
        self,
        html_fragment: str,
        language: str,
        level: str,
        dialect: str = "",
    ) -> Iterator[str]:
        for token in _TOKEN_RE.findall(html_fragment):
            yield token

    def translate_title(
        self,
        title: str,
        language: str,
        level: str,
        dialect: str = "",
    ) -> str:
        return title


def _strip_code_fences(s: str) -> str:
    fence = re.compile(r"^\s*```(?:html|text)?\s*([\s\S]*?)\s*```\s*$", re.IGNORECASE)
    m = fence.match(s.strip())
    return m.group(1) if m else s


def clean_title(raw: str) -> str:
    text = _strip_code_fences(raw).strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'«»“”":
        text = text[1:-1].strip()
    return text.strip("“”«»").strip()


def build_translator(provider: str, cfg: Dict[str, Any]) -> BaseTranslator:
    provider = (provider or "openai").lower()
    if provider == "openai":
        ocfg = cfg.get("translation", {}).get("openai", {})
        return OpenAITranslator(
            cfg=OpenAIConfig(
                model=ocfg.get("model", "gpt-4.1-mini"),
                temperature=float(ocfg.get("temperature", 0.3)),
                max_output_tokens=int(ocfg.get("max_output_tokens", 4000)),
            )
        )
    if provider == "dummy":
        return DummyTranslator()
    raise ProviderConfigurationError(f"Unknown translation provider: {provider}")


NodeEvent = Union[ContentChunk, ErrorSignal]


def translate_node(
    markup: str,
    translator: BaseTranslator,
    language: str,
    level: str,
    dialect: str = "",
    max_retries: int = 0,
    retry_backoff: float = 2.0,
    rate_limiter: Optional[RateLimiter] = None,
    logger: Optional[logging.Logger] = None,
) -> Iterator[NodeEvent]:
    """
    Translate one node, yielding content chunks as the model streams them.

    The first visible fragment is held back and emitted together with the
    second one; a lone fragment is flushed when the stream ends. On any
    failure the node's original markup is emitted, preceded by an
    ErrorSignal, so the text of the node is never lost. Retries only happen
    while nothing has been emitted for the node; after that, emitted chunks
    stay and the original follows them.
    """
    if not visible_text(markup):
        yield ContentChunk(markup)
        return

    attempts = max(1, max_retries + 1)
    for attempt in range(attempts):
        if rate_limiter:
            rate_limiter.wait()
        held = ""
        started = False
        emitted = False
        try:
            for fragment in translator.stream_html(markup, language, level, dialect):
                if not fragment:
                    continue
                if emitted:
                    yield ContentChunk(fragment)
                    continue
                held += fragment
                if not held.strip():
                    continue
                if not started:
                    started = True
                    continue
                emitted = True
                yield ContentChunk(held)
                held = ""
        except Exception as exc:  # noqa: BLE001 - provider failures are per-node
            if emitted:
                if logger:
                    logger.warning("Node %r failed mid-stream; appending original markup: %s", shorten(markup), exc)
                yield ErrorSignal("Translation interrupted for one section; showing the original", str(exc))
                yield ContentChunk(markup)
                return
            if logger:
                logger.warning(
                    "Node %r attempt %s/%s failed: %s",
                    shorten(markup),
                    attempt + 1,
                    attempts,
                    exc,
                )
            if attempt < attempts - 1:
                time.sleep(retry_backoff * (2**attempt))
                continue
            yield ErrorSignal("Failed to translate one section; showing the original", str(exc))
            yield ContentChunk(markup)
            return

        if emitted:
            return
        if held.strip():
            yield ContentChunk(held)
        else:
            if logger:
                logger.warning("Empty translation for node %r; using original markup.", shorten(markup))
            yield ContentChunk(markup)
        return
