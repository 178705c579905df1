"""Turn fetched files into an AnalysisGraph. Pure: no network, no clock."""

import logging
import posixpath
import tomllib
from collections import Counter, defaultdict
from typing import Iterable

from ..errors import InvariantViolation, ParseError
from ..models import (
    AnalysisGraph,
    AnalysisSummary,
    AnalysisWarning,
    Configuration,
    Edge,
    EdgeKind,
    ExternalRef,
    FetchedFile,
    Item,
    ItemKey,
    ItemKind,
    RepositoryRef,
    RepositoryStructure,
    Visibility,
)
from .python import PythonParser
from .rust import RustParser
from .source import ParsedFile

logger = logging.getLogger(__name__)

_RESOLVABLE = (ItemKind.TYPE, ItemKind.TRAIT)
_CALLABLE = (ItemKind.FUNCTION, ItemKind.METHOD)


def crate_roots(manifests: Iterable[FetchedFile], warnings: list[AnalysisWarning]) -> dict[str, str]:
    """Map each Cargo.toml directory to its crate name."""
    roots = {}
    for manifest in manifests:
        try:
            data = tomllib.loads(manifest.content.decode("utf-8"))
        except (UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
            logger.warning("Unreadable manifest %s: %s", manifest.path, e)
            warnings.append(AnalysisWarning(manifest.path, "parse", f"malformed manifest: {e}"))
            continue
        package = data.get("package")
        name = package.get("name") if isinstance(package, dict) else None
        if isinstance(name, str):
            roots[posixpath.dirname(manifest.path)] = name.replace("-", "_")
    return roots


def analyze(
    files: Iterable[FetchedFile],
    *,
    ref: RepositoryRef | None = None,
    warnings: Iterable[AnalysisWarning] = (),
    structure: RepositoryStructure | None = None,
) -> AnalysisGraph:
    """Parse every source file and connect the recovered items.

    Files are processed in traversal order regardless of the order they are
    passed in, so the same input always produces an equal graph.
    """
    ordered = sorted(files, key=lambda f: f.order)
    seen = set()
    for f in ordered:
        if f.path in seen:
            raise InvariantViolation(f"duplicate file path {f.path}")
        seen.add(f.path)

    warnings = list(warnings)
    manifests = [f for f in ordered if f.language == "manifest"]
    parsers = {
        "rust": RustParser(crate_roots(manifests, warnings)),
        "python": PythonParser(),
    }

    paths = []
    parsed = []
    for f in ordered:
        if f.language == "manifest":
            continue
        paths.append(f.path)
        parser = parsers.get(f.language)
        if parser is None:
            warnings.append(AnalysisWarning(f.path, "parse", f"no parser for language {f.language!r}"))
            continue
        try:
            result = parser.parse(f.path, f.content.decode("utf-8"))
        except UnicodeDecodeError as e:
            logger.warning("Cannot decode %s: %s", f.path, e)
            warnings.append(AnalysisWarning(f.path, "parse", f"not valid UTF-8: {e}"))
            continue
        except ParseError as e:
            logger.warning("Cannot parse %s: %s", f.path, e)
            warnings.append(AnalysisWarning(f.path, "parse", str(e)))
            continue
        warnings.extend(AnalysisWarning(f.path, "parse", message) for message in result.warnings)
        parsed.append(result)

    return _build_graph(ref, paths, parsed, warnings, structure)


def _build_graph(ref, paths, parsed: list[ParsedFile], warnings, structure) -> AnalysisGraph:
    items: list[Item] = []
    by_key: dict[ItemKey, Item] = {}
    for result in parsed:
        for item in result.items:
            if item.key in by_key:
                raise InvariantViolation(f"duplicate item identity {item.key}")
            by_key[item.key] = item
            items.append(item)

    by_name = defaultdict(list)
    for item in items:
        if item.kind in _RESOLVABLE:
            by_name[item.name].append(item)

    edges: dict[Edge, None] = {}
    externals: dict[str, ExternalRef] = {}

    def resolve(item: Item, name: str) -> list:
        candidates = [c for c in by_name.get(name, ()) if c.key != item.key]
        if not candidates:
            return [externals.setdefault(name, ExternalRef(name))]
        local = [c for c in candidates if c.path == item.path]
        return [c.key for c in (local or candidates)]

    for result in parsed:
        for module, (kind, qualified_name) in result.contains:
            source = (result.path, ItemKind.MODULE.value, module)
            target = (result.path, kind.value, qualified_name)
            if source not in by_key or target not in by_key:
                raise InvariantViolation(f"containment between unknown items {source} -> {target}")
            edges.setdefault(Edge(source, target, EdgeKind.CONTAINS))
        for item in result.items:
            for name in item.implements:
                for target in resolve(item, name):
                    edges.setdefault(Edge(item.key, target, EdgeKind.IMPLEMENTS))
            for name in item.references:
                for target in resolve(item, name):
                    edges.setdefault(Edge(item.key, target, EdgeKind.DEPENDS_ON))

    edge_list = tuple(edges)
    _check_edges(edge_list, by_key, externals)
    per_file = Counter(item.path for item in items)
    public = [item for item in items if item.visibility is Visibility.PUBLIC]
    summary = AnalysisSummary(
        files_analyzed=len(paths),
        items_by_kind=dict(Counter(item.kind.value for item in items)),
        items_per_file={path: per_file[path] for path in paths},
        edges_by_kind=dict(Counter(edge.kind.value for edge in edge_list)),
        implementations=sum(1 for edge in edge_list if edge.kind is EdgeKind.IMPLEMENTS),
        public_items=len(public),
        external_refs=len(externals),
        warnings=len(warnings),
        public_types=sum(1 for item in public if item.kind in _RESOLVABLE),
        public_functions=sum(1 for item in public if item.kind in _CALLABLE),
        tests=sum(result.tests for result in parsed),
    )
    logger.info(
        "Analyzed %d files: %d items, %d edges, %d warnings",
        len(paths), len(items), len(edge_list), len(warnings),
    )
    return AnalysisGraph(
        ref=ref,
        files=tuple(paths),
        items=tuple(items),
        edges=edge_list,
        external_refs=tuple(externals.values()),
        warnings=tuple(warnings),
        summary=summary,
        structure=structure,
        configuration=_configuration(parsed),
    )


def _configuration(parsed: list[ParsedFile]) -> Configuration:
    configuration = Configuration()
    for result in parsed:
        configuration.constants.extend(result.constants)
        for flag in result.feature_flags:
            if flag not in configuration.feature_flags:
                configuration.feature_flags.append(flag)
        for attribute in result.custom_attributes:
            if attribute not in configuration.custom_attributes:
                configuration.custom_attributes.append(attribute)
    return configuration


def _check_edges(edges, by_key, externals) -> None:
    known_externals = set(externals.values())
    for edge in edges:
        if edge.source not in by_key:
            raise InvariantViolation(f"edge from unknown item {edge.source}")
        if edge.is_external:
            if edge.target not in known_externals:
                raise InvariantViolation(f"edge to unrecorded external {edge.target.name}")
        elif edge.target not in by_key:
            raise InvariantViolation(f"edge to unknown item {edge.target}")
