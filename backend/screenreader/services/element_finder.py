"""
Locates the interactive elements of the pump app (info button, close button,
burger menu, back arrow, rotate button) by keyword matching on the accessible
label, the visible text and the view id.

Keywords are kept in one table per element kind so that a new locale is a
data change, not a code change.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from screenreader.models.ui import UiNode

logger = logging.getLogger(__name__)


class ElementKind(str, Enum):
    INFO = "info"
    CLOSE = "close"
    MENU = "menu"
    BACK = "back"
    ROTATE = "rotate"


@dataclass(frozen=True)
class ElementMatcher:
    label_keywords: tuple[str, ...] = ()
    text_keywords: tuple[str, ...] = ()
    text_exact: tuple[str, ...] = ()
    id_keywords: tuple[str, ...] = ()

    def matches(self, node: UiNode) -> bool:
        label = (node.content_description or "").lower()
        text = (node.text or "").lower()
        view_id = (node.view_id or "").lower()

        if label and any(k in label for k in self.label_keywords):
            return True
        if text and any(text == k for k in self.text_exact):
            return True
        if text and any(k in text for k in self.text_keywords):
            return True
        if view_id and any(k in view_id for k in self.id_keywords):
            return True
        return False


@dataclass(frozen=True)
class ElementSpec:
    matcher: ElementMatcher
    max_depth: int
    prefer_deepest: bool = False


ELEMENT_SPECS: dict[ElementKind, ElementSpec] = {
    ElementKind.INFO: ElementSpec(
        matcher=ElementMatcher(
            label_keywords=("info", "information", "hilfe", "help", "aide", "detail"),
            text_keywords=("info",),
            text_exact=("i",),
            id_keywords=("info",),
        ),
        max_depth=20,
    ),
    ElementKind.CLOSE: ElementSpec(
        matcher=ElementMatcher(
            label_keywords=(
                "close", "schließen", "fermer",
                "zurück", "back", "retour",
                "quittieren", "acknowledge", "confirmer",
                "ablehnen", "dismiss", "rejeter",
                "geschlossene optionen", "closed options", "options fermées",
            ),
            text_keywords=("schließen", "close", "fermer", "quittieren", "ok"),
            text_exact=("x", "×"),
            id_keywords=("close", "back"),
        ),
        max_depth=20,
    ),
    ElementKind.MENU: ElementSpec(
        matcher=ElementMatcher(
            label_keywords=(
                "menu", "menü", "navigation", "hamburger", "drawer",
                "open drawer", "ouvrir le tiroir",
                "öffnen", "open", "ouvrir",
                "offene optionen", "open options", "options ouvertes",
                "optionen", "options",
            ),
            text_keywords=("☰", "≡"),
            id_keywords=("menu", "burger", "drawer", "navigation"),
        ),
        max_depth=15,
    ),
    ElementKind.BACK: ElementSpec(
        matcher=ElementMatcher(
            label_keywords=("back", "zurück", "navigate up"),
            text_keywords=("←", "back"),
            id_keywords=("back", "up"),
        ),
        max_depth=15,
    ),
    ElementKind.ROTATE: ElementSpec(
        matcher=ElementMatcher(
            label_keywords=("bildschirm drehen", "rotate screen", "rotation écran", "rotate", "landscape"),
            text_keywords=("bildschirm drehen", "rotate screen"),
        ),
        max_depth=20,
        prefer_deepest=True,
    ),
}


def find_element(root: Optional[UiNode], kind: ElementKind) -> Optional[UiNode]:
    """
    Depth-first pre-order search for the element of `kind`.

    The first match wins, except for the rotate button: the app nests a
    decorative container with the same label around the real button, so all
    candidates are collected and the deepest one is returned (ties go to the
    one found first).
    """
    if root is None:
        return None
    spec = ELEMENT_SPECS[kind]

    if spec.prefer_deepest:
        candidates: list[tuple[UiNode, int]] = []
        _collect_matches(root, spec, 0, candidates)
        if not candidates:
            return None
        best_node, best_depth = candidates[0]
        for node, depth in candidates[1:]:
            if depth > best_depth:
                best_node, best_depth = node, depth
        logger.debug("Rotate candidates: %d, chose depth %d", len(candidates), best_depth)
        return best_node

    return _first_match(root, spec, 0)


def _is_candidate(node: UiNode, spec: ElementSpec) -> bool:
    if not node.clickable:
        return False
    return spec.matcher.matches(node)


def _first_match(node: UiNode, spec: ElementSpec, depth: int) -> Optional[UiNode]:
    if depth > spec.max_depth:
        return None
    if _is_candidate(node, spec):
        return node
    for child in node.children or ():
        found = _first_match(child, spec, depth + 1)
        if found is not None:
            return found
    return None


def _collect_matches(node: UiNode, spec: ElementSpec, depth: int, out: list[tuple[UiNode, int]]) -> None:
    if depth > spec.max_depth:
        return
    if _is_candidate(node, spec):
        out.append((node, depth))
    for child in node.children or ():
        _collect_matches(child, spec, depth + 1, out)


def find_info_button(root: Optional[UiNode]) -> Optional[UiNode]:
    return find_element(root, ElementKind.INFO)


def find_close_button(root: Optional[UiNode]) -> Optional[UiNode]:
    return find_element(root, ElementKind.CLOSE)


def find_menu_button(root: Optional[UiNode]) -> Optional[UiNode]:
    return find_element(root, ElementKind.MENU)


def find_back_button(root: Optional[UiNode]) -> Optional[UiNode]:
    return find_element(root, ElementKind.BACK)


def find_rotate_button(root: Optional[UiNode]) -> Optional[UiNode]:
    return find_element(root, ElementKind.ROTATE)
