"""HTTP producer: ``POST /translate-article`` answers with an NDJSON envelope stream."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, Optional

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from .config import load_config, scheduling_options
from .errors import ProviderConfigurationError, TitleTranslationError, UnknownRulesetError
from .html_parser import RULESET_VERSION
from .producer import iter_ndjson, open_translation_stream
from .protocol import MEDIA_TYPE, ArticlePayload, TranslationRequest
from .translator import BaseTranslator, build_translator


class ArticleContentModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    content: str
    text_content: str = Field("", alias="textContent")
    excerpt: Optional[str] = None
    byline: Optional[str] = None
    site_name: Optional[str] = Field(None, alias="siteName")
    lang: Optional[str] = None
    published_time: Optional[str] = Field(None, alias="publishedTime")


class TranslateArticleBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    article_content: ArticleContentModel = Field(..., alias="articleContent")
    target_language: str = Field(..., alias="targetLanguage", min_length=1)
    reading_age: str = Field(..., alias="readingAge", min_length=1)
    region: Optional[str] = None
    ruleset_version: Optional[str] = Field(None, alias="rulesetVersion")

    def to_request(self) -> TranslationRequest:
        return TranslationRequest(
            article=ArticlePayload.from_payload(self.article_content.model_dump(by_alias=True)),
            target_language=self.target_language,
            reading_age=self.reading_age,
            region=self.region,
            ruleset_version=self.ruleset_version,
        )


def _error(status_code: int, error: str, details: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "details": details})


def create_app(
    cfg: Optional[Dict[str, Any]] = None,
    translator: Optional[BaseTranslator] = None,
    logger: Optional[logging.Logger] = None,
) -> FastAPI:
    cfg = cfg or load_config()
    logger = logger or logging.getLogger("stream-translate")
    app = FastAPI(title="Stream Translate")
    options = scheduling_options(cfg)
    lock = threading.Lock()
    state: Dict[str, Optional[BaseTranslator]] = {"translator": translator}

    def get_translator() -> BaseTranslator:
        with lock:
            if state["translator"] is None:
                provider = cfg["translation"].get("provider", "openai")
                state["translator"] = build_translator(provider, cfg)
                logger.info("Translation provider ready: %s", provider)
            return state["translator"]

    @app.get("/health")
    def health() -> Dict[str, str]:
        return {"status": "ok", "rulesetVersion": RULESET_VERSION}

    @app.post("/translate-article")
    def translate_article(body: TranslateArticleBody):
        request = body.to_request()
        try:
            envelopes = open_translation_stream(request, get_translator(), logger=logger, **options)
        except UnknownRulesetError as exc:
            logger.warning(str(exc))
            return _error(status.HTTP_400_BAD_REQUEST, "Unsupported segmentation ruleset", str(exc))
        except ProviderConfigurationError as exc:
            logger.error(str(exc))
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Translation provider unavailable", str(exc))
        except TitleTranslationError as exc:
            logger.error(str(exc))
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to translate title", str(exc))

        return StreamingResponse(iter_ndjson(envelopes), media_type=MEDIA_TYPE)

    return app
