"""Render an AnalysisGraph as a structured document and as flat text."""

import json
from dataclasses import asdict

from ..models import AnalysisGraph, Edge, EdgeKind, ExternalRef, ItemKey

_RELATIONS = ("implements", "depends_on", "contains", "used_by")


def _label(graph: AnalysisGraph, target: ItemKey | ExternalRef) -> str:
    if isinstance(target, ExternalRef):
        return f"{target.name} (external)"
    item = graph.item(target)
    return item.qualified_name if item else target[2]


def _targets(graph: AnalysisGraph, edges: list[Edge], kind: EdgeKind) -> list[str]:
    return [_label(graph, e.target) for e in edges if e.kind is kind]


def _configuration(graph: AnalysisGraph) -> dict:
    configuration = graph.configuration
    return {
        "constants": [
            {**asdict(c), "visibility": c.visibility.value} for c in configuration.constants
        ],
        "feature_flags": list(configuration.feature_flags),
        "custom_attributes": list(configuration.custom_attributes),
    }


def to_structured_document(graph: AnalysisGraph) -> dict:
    """Build a JSON-serializable dict of the whole analysis."""
    ref = graph.ref
    files = []
    for path in graph.files:
        items = []
        for item in graph.items_in(path):
            outgoing = graph.outgoing(item.key)
            incoming = graph.incoming(item.key)
            items.append({
                "name": item.name,
                "qualified_name": item.qualified_name,
                "kind": item.kind.value,
                "visibility": item.visibility.value,
                "lines": [item.start_line, item.end_line],
                "signature": item.signature,
                "implements": _targets(graph, outgoing, EdgeKind.IMPLEMENTS),
                "depends_on": _targets(graph, outgoing, EdgeKind.DEPENDS_ON),
                "contains": _targets(graph, outgoing, EdgeKind.CONTAINS),
                "used_by": [
                    _label(graph, e.source) for e in incoming if e.kind is not EdgeKind.CONTAINS
                ],
            })
        files.append({"path": path, "items": items})

    return {
        "repository": {
            "host": ref.host,
            "owner": ref.owner,
            "name": ref.name,
            "ref": ref.ref,
        } if ref else None,
        "summary": asdict(graph.summary),
        "structure": asdict(graph.structure) if graph.structure else None,
        "configuration": _configuration(graph),
        "warnings": [asdict(w) for w in graph.warnings],
        "external_refs": [e.name for e in graph.external_refs],
        "files": files,
    }


def to_json(document: dict) -> str:
    return json.dumps(document, indent=2)


def _one_line(text: str) -> str:
    return " ".join(str(text).split())


def _block(lines: list[str]) -> str:
    # A block never contains an empty line and always ends with one
    return "\n".join(line for line in lines if line.strip()) + "\n\n"


def _header(document: dict) -> str:
    repo = document.get("repository")
    if repo:
        name = f"{repo['host']}/{repo['owner']}/{repo['name']}"
        if repo.get("ref"):
            name += f"@{repo['ref']}"
    else:
        name = "(unknown repository)"
    summary = document["summary"]
    lines = [
        f"# Repository analysis: {name}",
        f"files: {summary['files_analyzed']}, items: {sum(summary['items_by_kind'].values())}, "
        f"edges: {sum(summary['edges_by_kind'].values())}, warnings: {summary['warnings']}",
        "items by kind: " + ", ".join(f"{k}={v}" for k, v in sorted(summary["items_by_kind"].items())),
        f"implementations: {summary['implementations']}, public items: {summary['public_items']}, "
        f"external references: {summary['external_refs']}",
        f"public types: {summary['public_types']}, public functions: {summary['public_functions']}, "
        f"tests: {summary['tests']}",
    ]
    structure = document.get("structure")
    if structure:
        if structure.get("primary_language"):
            lines.append(f"primary language: {structure['primary_language']}")
        if structure.get("build_systems"):
            lines.append("build systems: " + ", ".join(structure["build_systems"]))
    configuration = document.get("configuration") or {}
    if configuration.get("feature_flags"):
        lines.append("feature flags: " + ", ".join(configuration["feature_flags"]))
    if configuration.get("custom_attributes"):
        lines.append("custom attributes: " + ", ".join(configuration["custom_attributes"]))
    for warning in document["warnings"]:
        lines.append(f"warning [{warning['kind']}] {warning['path']}: {_one_line(warning['message'])}")
    return _block(lines)


def _constants_block(constants: list[dict]) -> str:
    lines = ["## Constants"]
    for c in constants:
        declared = f"{c['name']}: {c['type']}" if c["type"] else c["name"]
        value = f" = {_one_line(c['value'])}" if c["value"] else ""
        lines.append(f"{declared}{value} ({c['path']}:{c['line']})")
    return _block(lines)


def _item_block(item: dict) -> str:
    start, end = item["lines"]
    lines = [
        f"### {item['kind']} {item['qualified_name']} [{item['visibility']}] lines {start}-{end}",
        f"signature: {_one_line(item['signature'])}" if item["signature"] else "",
    ]
    for relation in _RELATIONS:
        if item[relation]:
            lines.append(f"{relation}: " + ", ".join(item[relation]))
    return _block(lines)


def to_flat_text(document: dict) -> str:
    """Header block, an optional constants block, then per file a header
    block and one block per item.

    Blocks are separated by exactly one blank line, so the text can be split
    at blank lines without cutting an item in half.
    """
    parts = [_header(document)]
    constants = (document.get("configuration") or {}).get("constants")
    if constants:
        parts.append(_constants_block(constants))
    for f in document["files"]:
        parts.append(_block([f"## File: {f['path']} ({len(f['items'])} items)"]))
        parts.extend(_item_block(item) for item in f["items"])
    return "".join(parts)
