"""Indentation-based scan of Python source for classes, functions and methods."""

import posixpath
import re
from dataclasses import dataclass

from ..errors import ParseError
from ..models import Constant, ItemKind, Visibility
from .source import DraftTable, ItemDraft, LineIndex, ParsedFile, blank, collapse, shorten

_NOISE = re.compile(
    r'#[^\n]*'
    r'|[rRbBuUfF]{0,2}"""[\s\S]*?"""'
    r"|[rRbBuUfF]{0,2}'''[\s\S]*?'''"
    r'|[rRbBuUfF]{0,2}"(?:\\.|[^"\\\n])*"'
    r"|[rRbBuUfF]{0,2}'(?:\\.|[^'\\\n])*'"
)

_CLASS = re.compile(r"class\s+(?P<name>\w+)\s*(?:\[[^\]]*\])?\s*(?:\((?P<bases>.*)\))?\s*$")
_DEF = re.compile(r"(?:async\s+)?def\s+(?P<name>\w+)")
_CONSTANT = re.compile(r"(?P<name>[A-Z][A-Z0-9_]+)\s*(?::(?P<type>[^=]+))?=(?!=)(?P<value>.*)", re.S)

_REFERENCE = re.compile(r"(?:->|[:\[,(|=]|\breturn\b)\s*(?:[a-z_]\w*\.)*(?P<name>[A-Z]\w*)")

TRAIT_BASES = frozenset({"Protocol", "ABC"})
_NOT_IMPLEMENTED = frozenset({"object", "Protocol", "ABC", "Generic"})


def references(code: str) -> list[str]:
    return [m.group("name") for m in _REFERENCE.finditer(code)]


def visibility_of(name: str) -> Visibility:
    if name.startswith("_") and not (name.startswith("__") and name.endswith("__")):
        return Visibility.PRIVATE
    return Visibility.PUBLIC


def _depth_change(line: str) -> int:
    return sum(line.count(c) for c in "([{") - sum(line.count(c) for c in ")]}")


def _header_end(code: str) -> int:
    """Offset of the colon that ends a ``class``/``def`` header."""
    depth = 0
    for i, ch in enumerate(code):
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
        elif ch == ":" and depth == 0:
            return i
    return len(code)


def split_bases(bases: str) -> list[str]:
    parts, depth, current = [], 0, []
    for ch in bases:
        if ch in "([":
            depth += 1
        elif ch in ")]":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append("".join(current))
            current = []
        else:
            current.append(ch)
    parts.append("".join(current))
    return [p.strip() for p in parts if p.strip()]


def base_name(base: str) -> str | None:
    name = base.split("[", 1)[0].rsplit(".", 1)[-1].strip()
    return name if re.fullmatch(r"\w+", name) else None


@dataclass
class _Block:
    kind: str  # module, class, function, ignored
    indent: int
    qname: str
    draft: ItemDraft | None = None
    # Indentation of the first statement in the body
    body: int | None = None


class PythonParser:
    language = "python"

    def module_path(self, path: str) -> str:
        parts = posixpath.splitext(path)[0].split("/")
        if len(parts) > 1 and parts[0] in ("src", "lib"):
            parts = parts[1:]
        if len(parts) > 1 and parts[-1] == "__init__":
            parts.pop()
        return ".".join(parts)

    def parse(self, path: str, text: str) -> ParsedFile:
        return _PythonFile(path, text, self.module_path(path)).scan()


class _PythonFile:
    def __init__(self, path: str, text: str, module: str):
        self.path = path
        self.text = text
        self.module = module
        self.lines = LineIndex(text)
        self.table = DraftTable(path)
        self.code = blank(text, _NOISE)
        for quote in ('"', "'"):
            offset = self.code.find(quote)
            if offset >= 0:
                raise ParseError(f"unterminated string literal at line {self.lines.line_of(offset)}")
        # Qualified names declared under a decorator or a compound statement
        self.alternatives: set[str] = set()

    def scan(self) -> ParsedFile:
        name = self.module.rsplit(".", 1)[-1]
        self.table.declare(
            ItemDraft(
                ItemKind.MODULE, name, self.module, 1, self.lines.line_count,
                visibility_of(name), f"module {self.module}",
            ),
            None,
        )

        code_lines = self.code.split("\n")
        text_lines = self.text.split("\n")
        stack = [_Block("module", -1, self.module)]
        decorator_indent = None
        last_line = 0
        i = 0
        while i < len(code_lines):
            line = code_lines[i]
            if not line.strip():
                i += 1
                continue
            indent = len(line) - len(line.lstrip())
            first = i
            depth = _depth_change(line)
            while (depth > 0 or code_lines[i].rstrip().endswith("\\")) and i + 1 < len(code_lines):
                i += 1
                depth += _depth_change(code_lines[i])
            if depth != 0:
                raise ParseError(f"unbalanced brackets in statement at line {first + 1}")

            while stack[-1].indent >= indent:
                self._close(stack.pop(), last_line)

            code = "\n".join(code_lines[first:i + 1])[indent:]
            text = "\n".join(text_lines[first:i + 1])[indent:]
            decorated = decorator_indent == indent
            decorator_indent = indent if code.startswith("@") else None
            self._statement(stack, code, text, indent, first + 1, i + 1, decorated)
            last_line = i + 1
            i += 1

        while len(stack) > 1:
            self._close(stack.pop(), last_line)
        return self.table.finish()

    def _statement(self, stack, code, text, indent, first_line, last_line, decorated):
        top = stack[-1]
        if top.body is None:
            top.body = indent
        nested = indent > top.body
        end = _header_end(code)
        header = collapse(code[:end])
        signature = collapse(text[:end])

        cls = _CLASS.match(header)
        if cls:
            if top.kind != "module":
                stack.append(_Block("ignored", indent, top.qname, top.draft))
                return
            name = cls.group("name")
            names = []
            trait = False
            for base in split_bases(cls.group("bases") or ""):
                if "=" in base:
                    trait = trait or base_name(base.split("=", 1)[1]) == "ABCMeta"
                    continue
                names.append(base_name(base))
            trait = trait or any(n in TRAIT_BASES for n in names)
            kind = ItemKind.TRAIT if trait else ItemKind.TYPE
            qname = f"{self.module}.{name}"
            draft = ItemDraft(kind, name, qname, first_line, last_line, visibility_of(name), signature)
            bases = [n for n in names if n not in _NOT_IMPLEMENTED]
            if kind is ItemKind.TYPE:
                draft.add_implements(bases)
            else:
                # An interface extending another one depends on it
                draft.add_references(bases)
            draft.add_references(r for r in references(header) if r not in _NOT_IMPLEMENTED)
            declared = self._declare(draft, decorated or nested)
            stack.append(_Block("class", indent, qname, declared))
            return

        fn = _DEF.match(header)
        if fn:
            name = fn.group("name")
            if name == "test" or name.startswith("test_"):
                self.table.tests += 1
            if top.kind not in ("module", "class"):
                stack.append(_Block("ignored", indent, top.qname, top.draft))
                return
            if top.kind == "module":
                kind, qname = ItemKind.FUNCTION, f"{self.module}.{name}"
            else:
                kind, qname = ItemKind.METHOD, f"{top.qname}.{name}"
            draft = ItemDraft(kind, name, qname, first_line, last_line, visibility_of(name), signature)
            draft.add_references(references(code))
            declared = self._declare(draft, decorated or nested)
            stack.append(_Block("function", indent, qname, declared))
            return

        if top.kind == "module":
            self._constant(code, text, first_line)
        elif top.draft is not None:
            top.draft.add_references(references(code))

    def _declare(self, draft: ItemDraft, alternative: bool) -> ItemDraft | None:
        merge = alternative or draft.qualified_name in self.alternatives
        if alternative:
            self.alternatives.add(draft.qualified_name)
        return self.table.declare(draft, self.module, merge=merge)

    def _constant(self, code: str, text: str, line: int) -> None:
        m = _CONSTANT.match(code)
        if m is None:
            return
        name = m.group("name")
        value = shorten(text[m.start("value"):])
        if not value:
            return
        annotation = text[m.start("type"):m.end("type")] if m.group("type") else ""
        self.table.constants.append(Constant(
            path=self.path,
            name=name,
            type=collapse(annotation),
            value=value,
            line=line,
            visibility=visibility_of(name),
        ))

    def _close(self, block: _Block, last_line: int) -> None:
        if block.kind in ("class", "function") and block.draft is not None:
            block.draft.end_line = last_line
