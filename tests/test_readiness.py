from stream_translate.readiness import is_ready_for_early_consumption


def _paragraphs(count, words=50):
    return "".join("<p>" + " ".join(["palabra"] * words) + "</p>" for _ in range(count))


def test_threshold_on_paragraph_words():
    assert not is_ready_for_early_consumption(_paragraphs(5))
    assert is_ready_for_early_consumption(_paragraphs(6))


def test_empty_markup_is_not_ready():
    assert not is_ready_for_early_consumption("")


def test_custom_threshold():
    assert is_ready_for_early_consumption("<h2>uno dos tres</h2>", word_threshold=3)
    assert not is_ready_for_early_consumption("<h2>uno dos</h2>", word_threshold=3)


def test_captions_and_placeholders_do_not_count():
    captions = "<figure><figcaption>" + _paragraphs(6) + "</figcaption></figure>"
    placeholder = '<div class="video-placeholder">' + _paragraphs(6) + "</div>"
    assert not is_ready_for_early_consumption(captions)
    assert not is_ready_for_early_consumption(placeholder)
    assert is_ready_for_early_consumption(_paragraphs(5) + placeholder + _paragraphs(1))


def test_link_only_list_items_do_not_count():
    words = " ".join(["enlace"] * 50)
    nav = "<ul>" + "".join(f'<li><a href="/{i}">{words}</a></li>' for i in range(6)) + "</ul>"
    assert not is_ready_for_early_consumption(nav)

    items = "<ul>" + "".join(f'<li>{words} <a href="/{i}">más</a></li>' for i in range(6)) + "</ul>"
    assert is_ready_for_early_consumption(items)
