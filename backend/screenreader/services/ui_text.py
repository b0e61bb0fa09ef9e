from typing import Optional

from screenreader.models.ui import UiNode

MAX_TEXT_DEPTH = 20


def collect_all_text(root: Optional[UiNode], max_depth: int = MAX_TEXT_DEPTH) -> list[str]:
    """
    Flattens the visible text of a UI tree.

    Pre-order walk, parent before children, siblings in order. For each node
    the text comes first, then the accessible label; blank strings are
    skipped. Nodes deeper than `max_depth` are not visited.
    """
    texts: list[str] = []
    if root is not None:
        _collect(root, 0, max_depth, texts)
    return texts


def _collect(node: UiNode, depth: int, max_depth: int, out: list[str]) -> None:
    if depth > max_depth:
        return
    if node.text and node.text.strip():
        out.append(node.text)
    if node.content_description and node.content_description.strip():
        out.append(node.content_description)
    for child in node.children or ():
        _collect(child, depth + 1, max_depth, out)


def value_after(texts: list[str], index: int) -> str:
    """
    Returns the string following a label in collection order.

    The pump app renders "label" and "value" as sibling nodes, so after
    flattening the value is the next element. Past the end this is "".
    """
    nxt = index + 1
    if 0 <= nxt < len(texts):
        return texts[nxt]
    return ""
