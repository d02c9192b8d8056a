import json

from fastapi.testclient import TestClient

from stream_translate.config import load_config
from stream_translate.consumer import AttemptState, TranslationClient
from stream_translate.html_parser import RULESET_VERSION, segment_html
from stream_translate.protocol import MEDIA_TYPE, ArticlePayload
from stream_translate.server import create_app

ARTICLE = '<div><p>Hello world.</p><figure><img src="x.jpg"></figure><p>Second paragraph.</p></div>'


class EchoTranslator:
    def __init__(self, title_error=None):
        self.title_error = title_error

    def stream_html(self, html_fragment, language, level, dialect=""):
        yield html_fragment

    def translate_title(self, title, language, level, dialect=""):
        if self.title_error:
            raise self.title_error
        return f"{title} ({language})"


def _config(provider="dummy"):
    cfg = load_config()
    cfg["translation"]["provider"] = provider
    cfg["translation"]["scheduling"].update({"max_retries": 0, "retry_backoff_seconds": 0})
    return cfg


def _payload(**overrides):
    payload = {
        "articleContent": {"title": "Title", "content": ARTICLE, "textContent": "Hello world. Second paragraph."},
        "targetLanguage": "es",
        "readingAge": "intermediate",
        "rulesetVersion": RULESET_VERSION,
    }
    payload.update(overrides)
    return payload


def test_health():
    client = TestClient(create_app(_config(), translator=EchoTranslator()))
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "rulesetVersion": RULESET_VERSION}


def test_translate_article_streams_ndjson():
    client = TestClient(create_app(_config(), translator=EchoTranslator()))
    resp = client.post("/translate-article", json=_payload())
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith(MEDIA_TYPE)
    lines = [json.loads(line) for line in resp.text.splitlines() if line.strip()]
    assert lines == [
        {"metadata": {"title": "Title (Spanish)", "lang": "es"}},
        {"contentChunk": "<p>Hello world.</p>"},
        {"preservedRef": "preserved-0"},
        {"contentChunk": "<p>Second paragraph.</p>"},
    ]


def test_unknown_ruleset_is_rejected():
    client = TestClient(create_app(_config(), translator=EchoTranslator()))
    resp = client.post("/translate-article", json=_payload(rulesetVersion="99"))
    assert resp.status_code == 400
    assert resp.json()["error"] == "Unsupported segmentation ruleset"


def test_title_failure_is_a_json_error():
    client = TestClient(create_app(_config(), translator=EchoTranslator(title_error=RuntimeError("quota"))))
    resp = client.post("/translate-article", json=_payload())
    assert resp.status_code == 500
    body = resp.json()
    assert body["error"] == "Failed to translate title"
    assert "quota" in body["details"]


def test_missing_api_key_is_reported(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    client = TestClient(create_app(_config(provider="openai")))
    resp = client.post("/translate-article", json=_payload())
    assert resp.status_code == 500
    assert "OPENAI_API_KEY" in resp.json()["details"]


def test_missing_fields_are_rejected():
    client = TestClient(create_app(_config(), translator=EchoTranslator()))
    resp = client.post("/translate-article", json={"targetLanguage": "es"})
    assert resp.status_code == 422


def test_dummy_provider_from_config():
    client = TestClient(create_app(_config(provider="dummy")))
    resp = client.post("/translate-article", json=_payload())
    assert resp.status_code == 200
    assert json.loads(resp.text.splitlines()[0]) == {"metadata": {"title": "Title", "lang": "es"}}


def test_consumer_against_server():
    app = create_app(_config(), translator=EchoTranslator())
    consumer = TranslationClient(http_client=TestClient(app))
    attempt = consumer.translate(ArticlePayload(title="Title", content=ARTICLE), "es", "intermediate", region="mx")
    assert attempt.state is AttemptState.COMPLETED
    assert attempt.title == "Title (Spanish)"
    assert attempt.language_code == "es"
    assert segment_html(attempt.accumulated_markup) == segment_html(ARTICLE)
