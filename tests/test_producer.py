import json

import pytest

from stream_translate.consumer import Reassembler
from stream_translate.errors import TitleTranslationError, UnknownRulesetError
from stream_translate.html_parser import RULESET_VERSION, build_preserved_registry
from stream_translate.producer import open_translation_stream, produce_stream, translate_article_title
from stream_translate.protocol import (
    ArticlePayload,
    ContentChunk,
    ErrorSignal,
    Metadata,
    PreservedReference,
    TranslationRequest,
)
from stream_translate.translator import DummyTranslator

ARTICLE = '<div><p>Hello world.</p><figure><img src="x.jpg"></figure><p>Second paragraph.</p></div>'


class WholeFragmentTranslator:
    """Identity translator that answers each node in one fragment and records what it saw."""

    def __init__(self, title=None, title_error=None, fail_on=None):
        self.title = title
        self.title_error = title_error
        self.fail_on = fail_on
        self.fragments = []
        self.title_calls = 0

    def stream_html(self, html_fragment, language, level, dialect=""):
        self.fragments.append(html_fragment)
        if self.fail_on and self.fail_on in html_fragment:
            raise RuntimeError("model unavailable")
        yield html_fragment

    def translate_title(self, title, language, level, dialect=""):
        self.title_calls += 1
        if self.title_error:
            raise self.title_error
        return title if self.title is None else self.title


def _request(content=ARTICLE, title="Title", ruleset_version=RULESET_VERSION, region=None):
    return TranslationRequest(
        article=ArticlePayload(title=title, content=content),
        target_language="es",
        reading_age="intermediate",
        region=region,
        ruleset_version=ruleset_version,
    )


def _envelopes(request, translator, **kwargs):
    kwargs.setdefault("retry_backoff", 0)
    return list(open_translation_stream(request, translator, **kwargs))


def test_example_article_envelopes():
    envelopes = _envelopes(_request(), WholeFragmentTranslator())
    assert envelopes == [
        Metadata("Title", "es"),
        ContentChunk("<p>Hello world.</p>"),
        PreservedReference("preserved-0"),
        ContentChunk("<p>Second paragraph.</p>"),
    ]


def test_preserved_nodes_never_reach_the_translator():
    translator = WholeFragmentTranslator()
    _envelopes(_request(), translator)
    assert translator.fragments == ["<p>Hello world.</p>", "<p>Second paragraph.</p>"]


def test_translated_title_is_sent_first():
    envelopes = _envelopes(_request(), WholeFragmentTranslator(title="Título"))
    assert envelopes[0] == Metadata("Título", "es")


def test_empty_title_translation_keeps_original():
    envelopes = _envelopes(_request(title="Original"), WholeFragmentTranslator(title=""))
    assert envelopes[0] == Metadata("Original", "es")


def test_title_failure_is_raised_before_any_envelope():
    translator = WholeFragmentTranslator(title_error=RuntimeError("quota"))
    with pytest.raises(TitleTranslationError):
        open_translation_stream(_request(), translator, max_retries=1, retry_backoff=0)
    assert translator.title_calls == 2
    assert translator.fragments == []


def test_blank_title_is_not_translated():
    translator = WholeFragmentTranslator(title="unused")
    assert translate_article_title("  ", translator, "Spanish", "intermediate") == "  "
    assert translator.title_calls == 0


def test_node_failure_falls_back_and_continues():
    envelopes = _envelopes(_request(), WholeFragmentTranslator(fail_on="Hello"))
    assert envelopes[0] == Metadata("Title", "es")
    assert isinstance(envelopes[1], ErrorSignal)
    assert envelopes[2:] == [
        ContentChunk("<p>Hello world.</p>"),
        PreservedReference("preserved-0"),
        ContentChunk("<p>Second paragraph.</p>"),
    ]


def test_unknown_ruleset_is_rejected():
    with pytest.raises(UnknownRulesetError) as info:
        open_translation_stream(_request(ruleset_version="0"), WholeFragmentTranslator())
    assert info.value.received == "0"
    assert info.value.expected == RULESET_VERSION


def test_missing_ruleset_is_accepted():
    envelopes = _envelopes(_request(ruleset_version=None), WholeFragmentTranslator())
    assert len(envelopes) == 4


def test_empty_body_yields_only_metadata():
    assert _envelopes(_request(content=""), WholeFragmentTranslator()) == [Metadata("Title", "es")]


def test_produce_stream_lines():
    lines = list(produce_stream(_request(), WholeFragmentTranslator(), retry_backoff=0))
    assert all(line.endswith("\n") for line in lines)
    assert [json.loads(line) for line in lines] == [
        {"metadata": {"title": "Title", "lang": "es"}},
        {"contentChunk": "<p>Hello world.</p>"},
        {"preservedRef": "preserved-0"},
        {"contentChunk": "<p>Second paragraph.</p>"},
    ]


class PartialThenFailTranslator(WholeFragmentTranslator):
    """Streams two fragments of the node containing ``fail_on``, then raises."""

    def stream_html(self, html_fragment, language, level, dialect=""):
        self.fragments.append(html_fragment)
        if self.fail_on in html_fragment:
            yield "<p>Hola"
            yield " mun"
            raise RuntimeError("connection dropped")
        yield html_fragment


def test_multi_chunk_node_between_preserved_nodes_is_not_interleaved():
    content = '<figure><img src="a.jpg"></figure><p>a b c</p><figure><img src="b.jpg"></figure>'
    envelopes = _envelopes(_request(content=content), DummyTranslator())
    chunks = envelopes[2:-1]

    assert envelopes[0] == Metadata("Title", "es")
    assert envelopes[1] == PreservedReference("preserved-0")
    assert envelopes[-1] == PreservedReference("preserved-1")
    assert len(chunks) >= 2
    assert all(isinstance(e, ContentChunk) for e in chunks)
    assert "".join(e.text for e in chunks) == "<p>a b c</p>"


def test_mid_stream_node_failure_still_delivers_original_text():
    translator = PartialThenFailTranslator(fail_on="Hello")
    reassembler = Reassembler(build_preserved_registry(ARTICLE))
    for line in produce_stream(_request(), translator, retry_backoff=0):
        reassembler.feed(line)

    markup = reassembler.accumulated_markup
    assert markup.startswith("<p>Hola mun")
    assert "<p>Hello world.</p>" in markup
    assert markup.endswith("<p>Second paragraph.</p>")
    assert len(reassembler.notices) == 1
    assert translator.fragments.count("<p>Hello world.</p>") == 1
