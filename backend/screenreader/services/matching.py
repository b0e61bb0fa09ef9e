import re
from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Optional, TypeVar

T = TypeVar("T")


def parse_decimal(raw: str) -> Optional[float]:
    """Parses "1,5" and "1.5" alike."""
    try:
        return float(raw.replace(",", "."))
    except ValueError:
        return None


@dataclass(frozen=True)
class PatternRule(Generic[T]):
    """A compiled pattern plus the function that turns its match into a value."""

    name: str
    pattern: re.Pattern
    convert: Callable[[re.Match], Optional[T]]

    def apply(self, text: str) -> Optional[T]:
        match = self.pattern.search(text)
        if match is None:
            return None
        return self.convert(match)


def rule(name: str, pattern: str, convert: Callable[[re.Match], Optional[T]]) -> PatternRule[T]:
    return PatternRule(name=name, pattern=re.compile(pattern, re.IGNORECASE), convert=convert)


def first_match(rules: Iterable[PatternRule[T]], text: str) -> Optional[tuple[str, T]]:
    """
    Tries `rules` in order against one string and returns the name and value of
    the first rule that both matches and converts.
    """
    for r in rules:
        value = r.apply(text)
        if value is not None:
            return r.name, value
    return None


def first_match_in(rules: Iterable[PatternRule[T]], texts: Iterable[str]) -> Optional[tuple[str, T]]:
    rules = tuple(rules)
    for text in texts:
        found = first_match(rules, text)
        if found is not None:
            return found
    return None
