from dataclasses import dataclass, field
from typing import Any, Mapping, Optional


def _str_or_empty(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


@dataclass(frozen=True)
class UiNode:
    """
    Immutable snapshot of one accessibility node.

    `content_description` is the accessible label, `class_name` the element role
    and `view_id` the stable resource identifier. A fresh tree is captured per
    cycle; nodes are never mutated or reused across cycles.
    """

    text: str = ""
    content_description: str = ""
    class_name: str = ""
    view_id: str = ""
    clickable: bool = False
    children: tuple["UiNode", ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UiNode":
        """
        Builds a tree from a uiautomator or portal style JSON dump.
        Both camelCase keys and the raw XML attribute names are accepted.
        """
        raw_children = data.get("children") or []
        return cls(
            text=_str_or_empty(data.get("text")),
            content_description=_str_or_empty(
                data.get("contentDescription", data.get("content-desc", data.get("content_description")))
            ),
            class_name=_str_or_empty(data.get("className", data.get("class", data.get("class_name")))),
            view_id=_str_or_empty(data.get("resourceId", data.get("resource-id", data.get("view_id")))),
            clickable=_as_bool(data.get("clickable", False)),
            children=tuple(cls.from_dict(child) for child in raw_children if isinstance(child, Mapping)),
        )


@dataclass(frozen=True)
class BoundingBox:
    left: int
    top: int
    right: int
    bottom: int

    @property
    def x_center(self) -> int:
        return (self.left + self.right) // 2


@dataclass(frozen=True)
class OcrBlock:
    text: str
    box: Optional[BoundingBox] = None
