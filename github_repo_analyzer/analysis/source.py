"""Building blocks shared by the language scanners."""

import bisect
import re
from dataclasses import dataclass, field

from ..models import Constant, Item, ItemKind, Visibility

# Capitalized names that are never worth an edge
STOP_NAMES = frozenset({"Self", "Some", "None", "Ok", "Err", "True", "False"})


def blank(text: str, pattern: re.Pattern) -> str:
    """Replace every match of ``pattern`` with spaces, keeping newlines.

    Offsets and line numbers in the result line up with the original text.
    """
    return pattern.sub(lambda m: re.sub(r"[^\n]", " ", m.group()), text)


def collapse(text: str) -> str:
    return " ".join(text.split())


def shorten(text: str, limit: int = 120) -> str:
    text = collapse(text)
    return text if len(text) <= limit else text[:limit - 3] + "..."


def keep_reference(name: str, own_name: str = "") -> bool:
    # Single letters are almost always generic parameters, ALL_CAPS are constants
    if len(name) < 2 or name == own_name or name in STOP_NAMES:
        return False
    return not name.isupper()


class LineIndex:
    def __init__(self, text: str):
        self._starts = [0] + [m.end() for m in re.finditer(r"\n", text)]

    def line_of(self, offset: int) -> int:
        """1-based line number of a character offset."""
        return bisect.bisect_right(self._starts, offset)

    @property
    def line_count(self) -> int:
        return len(self._starts)


@dataclass
class ItemDraft:
    """Mutable item under construction while one file is scanned."""

    kind: ItemKind
    name: str
    qualified_name: str
    start_line: int
    end_line: int
    visibility: Visibility = Visibility.PRIVATE
    signature: str = ""
    references: list[str] = field(default_factory=list)
    implements: list[str] = field(default_factory=list)
    # Created from an impl block before (or without) the type's declaration
    anchored: bool = False

    def add_references(self, names) -> None:
        for name in names:
            if keep_reference(name, self.name) and name not in self.references:
                self.references.append(name)

    def add_implements(self, names) -> None:
        for name in names:
            if name and name not in self.implements:
                self.implements.append(name)

    def freeze(self, path: str) -> Item:
        return Item(
            kind=self.kind,
            name=self.name,
            qualified_name=self.qualified_name,
            path=path,
            start_line=self.start_line,
            end_line=max(self.start_line, self.end_line),
            visibility=self.visibility,
            signature=self.signature,
            references=tuple(r for r in self.references if r not in self.implements),
            implements=tuple(self.implements),
        )


@dataclass
class ParsedFile:
    """Items of one file plus the module containment recorded while scanning."""

    path: str
    items: list[Item] = field(default_factory=list)
    # (module qualified name, (item kind, item qualified name))
    contains: list[tuple[str, tuple[ItemKind, str]]] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    tests: int = 0
    constants: list[Constant] = field(default_factory=list)
    feature_flags: list[str] = field(default_factory=list)
    custom_attributes: list[str] = field(default_factory=list)


class DraftTable:
    """Declarations of one file in source order, keyed by (kind, qualified name)."""

    def __init__(self, path: str):
        self.path = path
        self._drafts: dict[tuple[ItemKind, str], ItemDraft] = {}
        self.contains: list[tuple[str, tuple[ItemKind, str]]] = []
        self.warnings: list[str] = []
        self.tests = 0
        self.constants: list[Constant] = []
        self.feature_flags: list[str] = []
        self.custom_attributes: list[str] = []

    def get(self, kind: ItemKind, qualified_name: str) -> ItemDraft | None:
        return self._drafts.get((kind, qualified_name))

    def declare(self, draft: ItemDraft, module: str | None, merge: bool = False) -> ItemDraft | None:
        """Register a declaration. Returns None if it repeats an earlier one.

        With ``merge`` a repeat, such as a property setter or a
        platform-specific alternative, is folded into the first declaration.
        """
        key = (draft.kind, draft.qualified_name)
        existing = self._drafts.get(key)
        if existing is not None:
            if existing.anchored and not draft.anchored:
                # The declaration shows up after one of its impl blocks
                existing.anchored = False
                existing.start_line = draft.start_line
                existing.end_line = draft.end_line
                existing.visibility = draft.visibility
                existing.signature = draft.signature
                existing.references = [r for r in existing.references if r != existing.name]
                existing.add_implements(draft.implements)
                existing.add_references(draft.references)
                return existing
            if merge:
                existing.end_line = max(existing.end_line, draft.end_line)
                existing.add_implements(draft.implements)
                existing.add_references(draft.references)
                return existing
            self.warnings.append(
                f"duplicate {draft.kind.value} {draft.qualified_name} at line {draft.start_line} ignored"
            )
            return None
        self._drafts[key] = draft
        if module is not None:
            self.contains.append((module, key))
        return draft

    def add_feature(self, name: str) -> None:
        if name not in self.feature_flags:
            self.feature_flags.append(name)

    def add_attribute(self, name: str) -> None:
        if name not in self.custom_attributes:
            self.custom_attributes.append(name)

    def finish(self) -> ParsedFile:
        return ParsedFile(
            path=self.path,
            items=[draft.freeze(self.path) for draft in self._drafts.values()],
            contains=list(self.contains),
            warnings=list(self.warnings),
            tests=self.tests,
            constants=list(self.constants),
            feature_flags=list(self.feature_flags),
            custom_attributes=list(self.custom_attributes),
        )
