from __future__ import annotations

from bs4 import BeautifulSoup, Tag

from .utils import count_words


DEFAULT_WORD_THRESHOLD = 300

TEXT_BLOCK_TAGS = ["p", "li", "h1", "h2", "h3", "h4", "h5", "h6"]


def _has_class(tag: Tag, name: str) -> bool:
    classes = tag.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return name in classes


def _is_skipped(element: Tag) -> bool:
    """Captions, placeholder blocks and navigation-like single-link list items."""
    if element.find_parent("figcaption") is not None:
        return True
    if _has_class(element, "video-placeholder") or element.find_parent(class_="video-placeholder") is not None:
        return True
    if element.name == "li" and element.parent is not None and element.parent.name in ("ul", "ol"):
        children = element.find_all(True, recursive=False)
        if len(children) == 1 and children[0].name == "a":
            return True
    return False


def is_ready_for_early_consumption(markup: str, word_threshold: int = DEFAULT_WORD_THRESHOLD) -> bool:
    """
    True once the readable blocks of ``markup`` hold at least ``word_threshold`` words.

    Walks paragraphs, list items and headings in document order and stops at
    the first block that reaches the threshold. Cost is linear in the markup
    length, so calling it after every appended chunk is fine for article-sized
    documents.
    """
    if not markup:
        return False
    soup = BeautifulSoup(markup, "html.parser")
    total = 0
    for element in soup.find_all(TEXT_BLOCK_TAGS):
        if _is_skipped(element):
            continue
        text = element.get_text().strip()
        if not text:
            continue
        total += count_words(text)
        if total >= word_threshold:
            return True
    return False
