from __future__ import annotations

import html
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import PreformattedString

from .utils import collapse_whitespace


# Bump whenever the preservable rules below change: producer and consumer
# must agree on them to number preserved nodes identically.
RULESET_VERSION = "1"

ROOT_ELEMENT_ID = "readability-page-1"
REFERENCE_PREFIX = "preserved-"

CONTAINER_TAGS = frozenset({"div", "article", "section", "main", "header", "footer", "aside"})
NON_CONTENT_TAGS = frozenset({"head", "script", "style", "noscript", "template"})
EMBEDDED_TAGS = frozenset({"img", "picture", "video", "audio", "iframe", "svg", "embed", "object", "hr", "table"})


class NodeKind(str, Enum):
    PRESERVED = "preserved"
    TRANSLATABLE = "translatable"


@dataclass(frozen=True)
class Node:
    """One top-level piece of the article body, in document order."""

    kind: NodeKind
    markup: str
    sequence_id: Optional[int] = None

    @property
    def key(self) -> Optional[str]:
        if self.sequence_id is None:
            return None
        return reference_key(self.sequence_id)

    @property
    def preserved(self) -> bool:
        return self.kind is NodeKind.PRESERVED


def reference_key(sequence_id: int) -> str:
    return f"{REFERENCE_PREFIX}{sequence_id}"


def is_preservable(tag: Tag) -> bool:
    """Media/figure-like blocks that are passed through untranslated."""
    name = (tag.name or "").lower()
    if name == "figure":
        return True
    if name != "div":
        return False
    if tag.get("data-testid") == "imageblock-wrapper":
        return True
    classes = tag.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return "video-placeholder" in classes


def _has_content(tag: Tag) -> bool:
    if (tag.name or "").lower() in EMBEDDED_TAGS:
        return True
    if tag.get_text(strip=True):
        return True
    return tag.find(True) is not None


def _is_plain_text(node: Any) -> bool:
    # Comments, doctypes, CDATA etc. are PreformattedString subclasses.
    return isinstance(node, NavigableString) and not isinstance(node, PreformattedString)


def _resolve_root(soup: BeautifulSoup) -> Tag:
    return soup.find(id=ROOT_ELEMENT_ID) or soup.body or soup.html or soup


def segment_html(markup: str) -> List[Node]:
    """
    Split article markup into an ordered list of preserved / translatable nodes.

    The result depends only on ``markup`` and the rule set of ``RULESET_VERSION``,
    so two processes segmenting the same input get the same sequence.
    """
    if not markup or not markup.strip():
        return []

    soup = BeautifulSoup(markup, "html.parser")
    if soup.find(True) is None:
        return [Node(NodeKind.TRANSLATABLE, markup)]

    nodes: List[Node] = []
    next_id = 0

    def _walk(element: Tag) -> None:
        nonlocal next_id
        for child in element.children:
            if isinstance(child, Tag):
                name = (child.name or "").lower()
                if is_preservable(child):
                    nodes.append(Node(NodeKind.PRESERVED, str(child), next_id))
                    next_id += 1
                elif name in CONTAINER_TAGS:
                    _walk(child)
                elif name in NON_CONTENT_TAGS:
                    continue
                elif _has_content(child):
                    nodes.append(Node(NodeKind.TRANSLATABLE, str(child)))
            elif _is_plain_text(child):
                text = str(child).strip()
                if text:
                    nodes.append(Node(NodeKind.TRANSLATABLE, f"<p>{html.escape(text, quote=False)}</p>"))

    _walk(_resolve_root(soup))
    return nodes


def build_preserved_registry(markup: str) -> Dict[str, str]:
    """
    Map each preserved node's reference key to its markup.

    The markup is BeautifulSoup's serialisation of the node (``<img src="x"/>``),
    not the input bytes. Producer and consumer both serialise the same way, so
    a resolved reference is exact with respect to this registry.
    """
    return {node.key: node.markup for node in segment_html(markup) if node.key is not None}


def visible_text(markup: str) -> str:
    """Human-readable text of a fragment, whitespace collapsed."""
    if not markup:
        return ""
    soup = BeautifulSoup(markup, "html.parser")
    return collapse_whitespace(soup.get_text(" "))


def nodes_to_rows(nodes: List[Node]) -> List[Dict[str, Any]]:
    """Flatten nodes for JSON/CSV inspection dumps."""
    return [
        {
            "index": idx,
            "kind": node.kind.value,
            "key": node.key or "",
            "chars": len(node.markup),
            "markup": node.markup,
        }
        for idx, node in enumerate(nodes)
    ]
