"""Lightweight structural scan of Rust source.

No macro expansion and no type checking: comments and literals are blanked
out, then a brace-depth scan picks up declarations at module, impl and trait
level. Anything declared inside a function or type body is ignored.
"""

import logging
import posixpath
import re
from dataclasses import dataclass

from ..errors import ParseError
from ..models import Constant, ItemKind, Visibility
from .source import DraftTable, ItemDraft, LineIndex, ParsedFile, collapse, shorten

logger = logging.getLogger(__name__)

DEFAULT_CRATE = "crate"

_NOISE = re.compile(
    r"""
      //[^\n]*
    | /\*
    | b?r(\#*)".*?"\1
    | b?"(?:\\.|[^"\\])*"
    | b?'(?:\\u\{[0-9a-fA-F]+\}|\\.|[^'\\\n])'
    """,
    re.S | re.X,
)

_TOKEN = re.compile(
    r"""
      (?P<open>\{)
    | (?P<close>\})
    | \#\[\s*derive\s*\((?P<derives>[^)]*)\)\s*\]
    | (?P<attr>\#!?\[)
    | (?<![\w:.])
      (?P<cvis>pub(?:\s*\([^)]*\))?\s+)?
      (?P<binding>const|static)\s+(?:mut\s+)?(?P<cname>\w+)\s*:
    | (?<![\w:.])
      (?P<vis>pub(?:\s*\([^)]*\))?\s+)?
      (?:(?:const|async|unsafe|default|extern)\s+)*
      (?P<kw>fn|struct|enum|union|trait|type|mod|impl)\b
    """,
    re.X,
)

_COMMENT_MARK = re.compile(r"/\*|\*/")

_ATTRIBUTE_PATH = re.compile(r"\s*((?:\w+\s*::\s*)*\w+)")
_FEATURE = re.compile(r'\bfeature\s*=\s*"([^"]+)"')

# Attributes the compiler and its bundled tools understand
BUILTIN_ATTRIBUTES = frozenset({
    "allow", "automatically_derived", "cfg", "cfg_attr", "cold", "crate_name", "crate_type",
    "deny", "deprecated", "derive", "doc", "expect", "export_name", "feature", "forbid",
    "global_allocator", "ignore", "inline", "link", "link_name", "link_section",
    "macro_export", "macro_use", "must_use", "no_implicit_prelude", "no_main", "no_mangle",
    "no_std", "non_exhaustive", "panic_handler", "path", "proc_macro", "proc_macro_attribute",
    "proc_macro_derive", "recursion_limit", "repr", "should_panic", "target_feature", "test",
    "track_caller", "used", "warn", "windows_subsystem",
})
_TOOL_PREFIXES = ("rustfmt", "clippy", "rustdoc")

_NAME = re.compile(r"\s+(?:r\#)?(\w+)")

_REFERENCE = re.compile(
    r"""
    (?:->|[:<,(&+=\[]|\b(?:dyn|impl|for|where|as)\b)
    \s*(?:'\w+\s+)?(?:mut\s+)?(?:dyn\s+)?
    (?:[a-z_]\w*::)*
    (?P<name>[A-Z]\w*)
    """,
    re.X,
)

_TYPE_PREFIX = re.compile(r"^(?:&\s*(?:'\w+\s+)?(?:mut\s+)?|dyn\s+|!|\s+)*")


def strip_noise(text: str) -> str:
    """Blank comments and literals, keeping offsets. Block comments nest."""
    parts = []
    pos = 0
    while True:
        m = _NOISE.search(text, pos)
        if m is None:
            break
        end = _comment_end(text, m.start()) if m.group() == "/*" else m.end()
        parts.append(text[pos:m.start()])
        parts.append(re.sub(r"[^\n]", " ", text[m.start():end]))
        pos = end
    parts.append(text[pos:])
    return "".join(parts)


def _comment_end(text: str, start: int) -> int:
    depth = 0
    for mark in _COMMENT_MARK.finditer(text, start):
        depth += 1 if mark.group() == "/*" else -1
        if depth == 0:
            return mark.end()
    line = text.count("\n", 0, start) + 1
    raise ParseError(f"unterminated block comment at line {line}")


def references(code: str) -> list[str]:
    """Capitalized names in type positions, in order of appearance."""
    return [m.group("name") for m in _REFERENCE.finditer(code)]


def type_name(text: str) -> str | None:
    """Local name of a written type: ``&mut std::vec::Vec<T>`` -> ``Vec``."""
    text = _TYPE_PREFIX.sub("", text.strip())
    name = text.split("<", 1)[0].rsplit("::", 1)[-1].strip()
    return name if re.fullmatch(r"\w+", name) else None


def _visibility(prefix: str | None) -> Visibility:
    if not prefix:
        return Visibility.PRIVATE
    scope = re.search(r"\(\s*([^)]*?)\s*\)", prefix)
    if scope is None:
        return Visibility.PUBLIC
    if scope.group(1) == "crate":
        return Visibility.CRATE
    return Visibility.RESTRICTED


def _header_end(code: str, pos: int) -> int | None:
    """Offset of the ``{``, ``;`` or ``}`` that ends a declaration header."""
    depth = 0
    for i in range(pos, len(code)):
        ch = code[i]
        if ch in "([":
            depth += 1
        elif ch in ")]":
            depth -= 1
        elif depth <= 0 and ch in "{;}":
            return i
    return None


def _statement_end(code: str, pos: int) -> int | None:
    """Offset of the ``;`` that ends an item, skipping nested brackets and braces."""
    depth = 0
    for i in range(pos, len(code)):
        ch = code[i]
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            depth -= 1
            if depth < 0:
                return None
        elif ch == ";" and depth == 0:
            return i
    return None


def _assignment(code: str, start: int, end: int) -> int:
    """Offset of the ``=`` after a declared type, or -1. Skips ``Item = T`` bindings."""
    depth = 0
    for i in range(start, end):
        ch = code[i]
        if ch == "<":
            depth += 1
        elif ch == ">" and code[i - 1] != "-":
            depth -= 1
        elif ch == "=" and depth <= 0:
            return i
    return -1


def _skip_brackets(code: str, pos: int) -> int:
    depth = 0
    for i in range(pos, len(code)):
        if code[i] == "[":
            depth += 1
        elif code[i] == "]":
            depth -= 1
            if depth == 0:
                return i + 1
    raise ParseError("unterminated attribute")


def _strip_generics(text: str) -> str:
    text = text.lstrip()
    if not text.startswith("<"):
        return text
    depth = 0
    for i, ch in enumerate(text):
        if ch == "<":
            depth += 1
        elif ch == ">" and text[i - 1] != "-":
            depth -= 1
            if depth == 0:
                return text[i + 1:]
    return ""


def split_impl(header: str) -> tuple[str | None, str]:
    """Split the part after ``impl`` into (trait, self type)."""
    header = _strip_generics(header)
    depth = 0
    for m in re.finditer(r"->|[<>]|\bfor\b", header):
        token = m.group()
        if token == "<":
            depth += 1
        elif token == ">":
            depth = max(0, depth - 1)
        elif token == "for" and depth == 0:
            return header[:m.start()], header[m.end():]
    return None, header


@dataclass
class _Scope:
    kind: str  # module, impl, trait, item, block
    module: str
    draft: ItemDraft | None = None
    owner: str = ""
    trait: str | None = None
    visibility: Visibility = Visibility.PRIVATE
    origin: int = 0
    start: int = 0


class RustParser:
    language = "rust"

    def __init__(self, crate_roots: dict[str, str] | None = None):
        # directory of a Cargo.toml -> crate name
        self.crate_roots = dict(crate_roots or {})

    def module_path(self, path: str) -> str:
        directory = posixpath.dirname(path)
        root, crate = "", DEFAULT_CRATE
        for candidate, name in self.crate_roots.items():
            inside = candidate == "" or directory == candidate or directory.startswith(candidate + "/")
            if inside and len(candidate) >= len(root):
                root, crate = candidate, name
        relative = path[len(root) + 1:] if root else path
        parts = posixpath.splitext(relative)[0].split("/")
        if parts[0] == "src":
            parts = parts[1:]
        if parts and parts[-1] == "mod":
            parts.pop()
        elif len(parts) == 1 and parts[0] in ("lib", "main"):
            parts = []
        return "::".join([crate, *parts])

    def parse(self, path: str, text: str) -> ParsedFile:
        return _RustFile(path, text, self.module_path(path)).scan()


class _RustFile:
    def __init__(self, path: str, text: str, module: str):
        self.path = path
        self.text = text
        self.module = module
        self.lines = LineIndex(text)
        self.table = DraftTable(path)
        self.derives: list[str] = []
        self.testing = False
        self.code = strip_noise(text)
        offset = self.code.find('"')
        if offset >= 0:
            raise ParseError(f"unterminated string literal at line {self.lines.line_of(offset)}")

    def line(self, offset: int) -> int:
        return self.lines.line_of(offset)

    def scan(self) -> ParsedFile:
        name = self.module.rsplit("::", 1)[-1]
        root = ItemDraft(
            ItemKind.MODULE, name, self.module, 1, self.lines.line_count,
            Visibility.PUBLIC, f"mod {self.module}",
        )
        self.table.declare(root, None)

        stack = [_Scope("module", self.module)]
        pending = None
        pos = 0
        while True:
            m = _TOKEN.search(self.code, pos)
            if m is None:
                break
            pos = m.end()
            if m.group("open") or m.group("close"):
                self.derives, self.testing = [], False
            if m.group("open"):
                scope = pending or _Scope("block", stack[-1].module)
                scope.start = m.start()
                stack.append(scope)
                pending = None
            elif m.group("close"):
                if len(stack) == 1:
                    raise ParseError(f"unbalanced '}}' at line {self.line(m.start())}")
                self._close(stack.pop(), m.start())
            elif m.group("derives") is not None:
                self.derives.extend(type_name(d) for d in m.group("derives").split(","))
            elif m.group("attr"):
                pos = _skip_brackets(self.code, m.end() - 1)
                self._attribute(self.text[m.end():pos - 1])
            elif m.group("binding"):
                pos = self._constant(m, stack[-1])
            else:
                pending, pos = self._declaration(m, stack[-1])

        if len(stack) > 1:
            raise ParseError(f"unclosed '{{' opened at line {self.line(stack[-1].start)}")
        return self.table.finish()

    def _declaration(self, m: re.Match, scope: _Scope) -> tuple[_Scope | None, int]:
        kw = m.group("kw")
        derives, self.derives = self.derives, []
        testing, self.testing = self.testing, False
        if testing and kw == "fn":
            self.table.tests += 1
        end = _header_end(self.code, m.end())
        if end is None:
            raise ParseError(f"unterminated {kw} declaration at line {self.line(m.start())}")
        terminator = self.code[end]
        resume = end if terminator == "{" else end + 1
        if terminator == "}":
            return None, end
        if scope.kind not in ("module", "impl", "trait"):
            return None, resume

        header = self.code[m.start():end]
        signature = collapse(self.text[m.start():end])
        start_line = self.line(m.start())
        visibility = _visibility(m.group("vis"))

        if kw == "impl":
            return self._impl(m, scope, end, signature), resume

        name = _NAME.match(self.code, m.end())
        if name is None:
            return None, resume
        name = name.group(1)
        body = terminator == "{"

        if kw == "mod":
            if scope.kind != "module" or not body:
                return None, resume
            qname = f"{scope.module}::{name}"
            draft = ItemDraft(ItemKind.MODULE, name, qname, start_line, start_line, visibility, signature)
            return _Scope("module", qname, draft=self.table.declare(draft, scope.module)), resume

        if kw in ("struct", "enum", "union", "type", "trait"):
            if scope.kind != "module":
                return None, resume
            kind = ItemKind.TRAIT if kw == "trait" else ItemKind.TYPE
            qname = f"{scope.module}::{name}"
            draft = ItemDraft(kind, name, qname, start_line, self.line(end), visibility, signature)
            draft.add_references(references(header))
            if kind is ItemKind.TYPE:
                draft.add_implements(derives)
            declared = self.table.declare(draft, scope.module)
            if not body:
                return None, resume
            if kind is ItemKind.TRAIT:
                return _Scope("trait", scope.module, draft=declared, owner=qname, visibility=visibility), resume
            return _Scope("item", scope.module, draft=declared, origin=m.start()), resume

        # fn
        if scope.kind == "module":
            kind, qname = ItemKind.FUNCTION, f"{scope.module}::{name}"
        elif scope.kind == "impl":
            kind = ItemKind.METHOD
            if scope.trait:
                qname = f"<{scope.owner} as {scope.trait}>::{name}"
                visibility = Visibility.PUBLIC
            else:
                qname = f"{scope.owner}::{name}"
        else:
            kind, qname = ItemKind.METHOD, f"{scope.owner}::{name}"
            visibility = scope.visibility
        draft = ItemDraft(kind, name, qname, start_line, self.line(end), visibility, signature)
        draft.add_references(references(header))
        declared = self.table.declare(draft, scope.module)
        if not body:
            return None, resume
        return _Scope("item", scope.module, draft=declared, origin=m.start()), resume

    def _impl(self, m: re.Match, scope: _Scope, end: int, signature: str) -> _Scope:
        if scope.kind != "module" or self.code[end] != "{":
            return _Scope("block", scope.module)
        trait_part, self_part = split_impl(self.code[m.end():end])
        self_name = type_name(re.split(r"\bwhere\b", self_part)[0])
        trait_name = type_name(trait_part) if trait_part else None
        if self_name is None:
            logger.debug("Unrecognized impl target at %s:%d", self.path, self.line(m.start()))
            return _Scope("block", scope.module)

        qname = f"{scope.module}::{self_name}"
        draft = self.table.get(ItemKind.TYPE, qname)
        created = None
        if draft is None:
            # The self type lives elsewhere; anchor the implementation here
            line = self.line(m.start())
            draft = ItemDraft(ItemKind.TYPE, self_name, qname, line, line, signature=signature, anchored=True)
            draft.references.append(self_name)
            self.table.declare(draft, scope.module)
            created = draft
        if trait_name:
            draft.add_implements([trait_name])
        draft.add_references(references(self.code[m.start():end]))
        return _Scope("impl", scope.module, draft=created, owner=qname, trait=trait_name)

    def _close(self, scope: _Scope, offset: int) -> None:
        draft = scope.draft
        if draft is None:
            return
        if scope.kind == "item":
            draft.end_line = self.line(offset)
            draft.add_references(references(self.code[scope.origin:offset]))
        elif scope.kind == "impl":
            draft.end_line = max(draft.end_line, self.line(offset))
        else:
            draft.end_line = self.line(offset)

    def _attribute(self, inner: str) -> None:
        m = _ATTRIBUTE_PATH.match(inner)
        if m is None:
            return
        path = re.sub(r"\s+", "", m.group(1))
        if path in ("cfg", "cfg_attr"):
            for flag in _FEATURE.findall(inner):
                self.table.add_feature(flag)
        if path == "test" or path.endswith("::test"):
            # #[test], #[tokio::test] and friends
            self.testing = True
        elif path not in BUILTIN_ATTRIBUTES and path.split("::")[0] not in _TOOL_PREFIXES:
            self.table.add_attribute(path)

    def _constant(self, m: re.Match, scope: _Scope) -> int:
        self.derives, self.testing = [], False
        name = m.group("cname")
        if scope.kind != "module" or name == "_":
            return m.end()
        end = _statement_end(self.code, m.end())
        if end is None:
            raise ParseError(f"unterminated {m.group('binding')} {name} at line {self.line(m.start())}")
        assign = _assignment(self.code, m.end(), end)
        if assign < 0:
            declared_type, value = self.text[m.end():end], ""
        else:
            declared_type, value = self.text[m.end():assign], self.text[assign + 1:end]
        self.table.constants.append(Constant(
            path=self.path,
            name=name,
            type=collapse(declared_type),
            value=shorten(value),
            line=self.line(m.start()),
            visibility=_visibility(m.group("cvis")),
        ))
        return end + 1
