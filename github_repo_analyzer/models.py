"""Data models for repository analysis."""

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum

GITHUB_HOST = "github.com"


@dataclass
class ApiResponse:
    """Response from the GitHub REST API client."""

    status: int
    body: dict | list
    etag: str | None = None
    link: str | None = None
    next_url: str | None = None


@dataclass(frozen=True)
class RepositoryRef:
    """Identity of an analysis target. A ref of None means the default branch."""

    owner: str
    name: str
    ref: str | None = None
    host: str = GITHUB_HOST

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def with_ref(self, ref: str) -> "RepositoryRef":
        return RepositoryRef(owner=self.owner, name=self.name, ref=ref, host=self.host)

    def __str__(self) -> str:
        suffix = f"@{self.ref}" if self.ref else ""
        return f"{self.host}/{self.full_name}{suffix}"


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    path: str
    kind: str  # "file", "dir", "symlink", "submodule"
    size: int = 0

    @property
    def is_dir(self) -> bool:
        return self.kind == "dir"

    @property
    def is_file(self) -> bool:
        return self.kind == "file"


@dataclass(frozen=True)
class FetchedFile:
    """A file pulled from the repository, tagged with its traversal position."""

    path: str
    content: bytes
    language: str
    order: int = 0


class ItemKind(str, Enum):
    TYPE = "type"
    TRAIT = "trait"
    FUNCTION = "function"
    METHOD = "method"
    MODULE = "module"


class Visibility(str, Enum):
    PUBLIC = "public"
    CRATE = "crate"
    RESTRICTED = "restricted"
    PRIVATE = "private"


class EdgeKind(str, Enum):
    IMPLEMENTS = "implements"
    DEPENDS_ON = "depends_on"
    CONTAINS = "contains"


# (file path, item kind, qualified name)
ItemKey = tuple[str, str, str]


@dataclass(frozen=True)
class Item:
    kind: ItemKind
    name: str
    qualified_name: str
    path: str
    start_line: int
    end_line: int
    visibility: Visibility = Visibility.PRIVATE
    signature: str = ""
    references: tuple[str, ...] = ()
    implements: tuple[str, ...] = ()

    @property
    def key(self) -> ItemKey:
        return (self.path, self.kind.value, self.qualified_name)


@dataclass(frozen=True)
class ExternalRef:
    """Placeholder for a name that no item in the fetched tree declares."""

    name: str


@dataclass(frozen=True)
class Edge:
    source: ItemKey
    target: ItemKey | ExternalRef
    kind: EdgeKind

    @property
    def is_external(self) -> bool:
        return isinstance(self.target, ExternalRef)


@dataclass(frozen=True)
class Constant:
    """A named compile-time value: Rust const/static or an ALL_CAPS Python assignment."""

    path: str
    name: str
    type: str
    value: str
    line: int
    visibility: Visibility = Visibility.PRIVATE


@dataclass
class Configuration:
    constants: list[Constant] = field(default_factory=list)
    # Distinct names, first-seen order
    feature_flags: list[str] = field(default_factory=list)
    custom_attributes: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class AnalysisWarning:
    path: str
    kind: str  # "fetch", "parse", "skipped"
    message: str


@dataclass
class RepositoryStructure:
    """Layout facts gathered from directory listings."""

    ref: str | None = None
    has_src_directory: bool = False
    has_tests: bool = False
    has_docs: bool = False
    primary_language: str | None = None
    build_systems: list[str] = field(default_factory=list)
    manifests: list[str] = field(default_factory=list)
    language_counts: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class AnalysisSummary:
    files_analyzed: int
    items_by_kind: dict[str, int]
    items_per_file: dict[str, int]
    edges_by_kind: dict[str, int]
    implementations: int
    public_items: int
    external_refs: int
    warnings: int
    public_types: int = 0
    public_functions: int = 0
    tests: int = 0


@dataclass(frozen=True)
class AnalysisGraph:
    """Items and edges recovered from one repository. Immutable once built."""

    ref: RepositoryRef | None
    files: tuple[str, ...]
    items: tuple[Item, ...]
    edges: tuple[Edge, ...]
    external_refs: tuple[ExternalRef, ...]
    warnings: tuple[AnalysisWarning, ...]
    summary: AnalysisSummary
    structure: RepositoryStructure | None = None
    configuration: Configuration = field(default_factory=Configuration)
    _by_key: dict = field(init=False, repr=False, compare=False)
    _outgoing: dict = field(init=False, repr=False, compare=False)
    _incoming: dict = field(init=False, repr=False, compare=False)
    _by_path: dict = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        outgoing = defaultdict(list)
        incoming = defaultdict(list)
        by_path = defaultdict(list)
        for item in self.items:
            by_path[item.path].append(item)
        object.__setattr__(self, "_by_path", dict(by_path))
        for edge in self.edges:
            outgoing[edge.source].append(edge)
            incoming[edge.target].append(edge)
        object.__setattr__(self, "_by_key", {item.key: item for item in self.items})
        object.__setattr__(self, "_outgoing", dict(outgoing))
        object.__setattr__(self, "_incoming", dict(incoming))

    def item(self, key: ItemKey) -> Item | None:
        return self._by_key.get(key)

    def items_in(self, path: str) -> list[Item]:
        return list(self._by_path.get(path, ()))

    def outgoing(self, key: ItemKey) -> list[Edge]:
        return list(self._outgoing.get(key, ()))

    def incoming(self, target: ItemKey | ExternalRef) -> list[Edge]:
        return list(self._incoming.get(target, ()))


@dataclass(frozen=True)
class Chunk:
    index: int
    text: str

    @property
    def size(self) -> int:
        return len(self.text.encode("utf-8"))


@dataclass
class AnalysisReport:
    """Everything the pipeline produces for one repository."""

    graph: AnalysisGraph
    document: dict
    flat_text: str
    chunks: list[Chunk]
