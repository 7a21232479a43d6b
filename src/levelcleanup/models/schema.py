from __future__ import annotations

import threading
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple, Union


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class DocumentKind(str, Enum):
    LEVEL_INFO = "level_info"
    MISSION_GROUP = "mission_group"
    PREFAB = "prefab"
    MATERIALS = "materials"
    MANAGED_DATA = "managed_data"
    TERRAIN = "terrain"
    DECALS = "decals"
    FOREST = "forest"
    MESH = "mesh"
    FACILITIES = "facilities"
    SCRIPT = "script"


# documents the game loads by convention; everything they reference is reachable
ROOT_KINDS = {
    DocumentKind.LEVEL_INFO,
    DocumentKind.MISSION_GROUP,
    DocumentKind.MATERIALS,
    DocumentKind.MANAGED_DATA,
    DocumentKind.TERRAIN,
    DocumentKind.DECALS,
    DocumentKind.FOREST,
    DocumentKind.FACILITIES,
    DocumentKind.SCRIPT,
}

# documents whose placed objects carry world positions; prefab contents are
# relative to their Prefab object and move with it
POSITION_KINDS = {
    DocumentKind.MISSION_GROUP,
    DocumentKind.DECALS,
    DocumentKind.FOREST,
}


@dataclass
class Diagnostic:
    severity: Severity
    message: str
    code: str = ""
    source_file: Optional[str] = None


@dataclass
class FileRecord:
    path: str          # absolute
    rel_path: str      # posix, relative to the level root
    key: str           # case-folded rel_path
    size_bytes: int
    exists: bool = True
    role: str = "asset"  # document|asset|unclassified
    kind: Optional[DocumentKind] = None

    @property
    def size_mb(self) -> float:
        return round(self.size_bytes / (1024 * 1024), 2)


@dataclass
class LevelTree:
    root: Path
    level_name: str
    mount_root: Path
    files: List[FileRecord] = field(default_factory=list)
    generation: int = 0
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def index(self) -> Dict[str, FileRecord]:
        return {f.key: f for f in self.files}


# ---------------------------------------------------------------------------
# Tagged node model for the tolerant JSON reader. Spans are absolute offsets
# into the decoded document text; ``end`` is exclusive.
# ---------------------------------------------------------------------------

@dataclass
class JsonString:
    value: str
    start: int
    end: int


@dataclass
class JsonNumber:
    raw: str
    value: Decimal
    start: int
    end: int


@dataclass
class JsonLiteral:
    value: Any  # True, False or None
    start: int
    end: int


@dataclass
class JsonArray:
    items: List["Node"]
    start: int
    end: int


@dataclass
class Member:
    key: str
    value: "Node"
    key_start: int
    shadowed: bool = False


@dataclass
class JsonObject:
    members: List[Member]
    start: int
    end: int

    def get(self, key: str) -> Optional["Node"]:
        # last definition wins
        for m in reversed(self.members):
            if m.key == key:
                return m.value
        return None

    def effective(self) -> List[Member]:
        return [m for m in self.members if not m.shadowed]

    def get_str(self, key: str) -> Optional[str]:
        node = self.get(key)
        if isinstance(node, JsonString):
            return node.value
        return None


Node = Union[JsonObject, JsonArray, JsonString, JsonNumber, JsonLiteral]


def number_triplet(node: Optional[Node]) -> Optional[Tuple[JsonNumber, JsonNumber, JsonNumber]]:
    if isinstance(node, JsonArray) and len(node.items) == 3:
        if all(isinstance(i, JsonNumber) for i in node.items):
            return node.items[0], node.items[1], node.items[2]  # type: ignore[return-value]
    return None


def to_plain(node: Optional[Node]) -> Any:
    if node is None:
        return None
    if isinstance(node, JsonObject):
        return {m.key: to_plain(m.value) for m in node.effective()}
    if isinstance(node, JsonArray):
        return [to_plain(i) for i in node.items]
    if isinstance(node, JsonNumber):
        return node.value
    return node.value


@dataclass
class ParsedDocument:
    path: str
    rel_path: str
    kind: DocumentKind
    entries: List[Node] = field(default_factory=list)
    text: str = ""
    encoding: str = "utf-8"
    damaged: bool = False
    material_names: List[str] = field(default_factory=list)  # mesh documents only
    title: Optional[str] = None

    def flatten(self) -> Dict[str, Node]:
        out: Dict[str, Node] = {}
        for i, entry in enumerate(self.entries):
            for p, n in _walk(entry, str(i)):
                out[p] = n
        return out


def _walk(node: Node, prefix: str) -> Iterator[Tuple[str, Node]]:
    yield prefix, node
    if isinstance(node, JsonObject):
        for m in node.effective():
            yield from _walk(m.value, f"{prefix}.{m.key}")
    elif isinstance(node, JsonArray):
        for i, item in enumerate(node.items):
            yield from _walk(item, f"{prefix}[{i}]")


@dataclass(frozen=True)
class FileReference:
    source_file: str       # rel_path of the referencing document
    structural_path: str
    target_key: str        # case-folded rel_path, or absolute path when outside the level
    raw_value: str
    material: Optional[str] = None  # set for texture edges owned by a material definition


@dataclass(frozen=True)
class MaterialUse:
    source_file: str
    structural_path: str
    name: str


@dataclass
class MaterialDefinition:
    name: str
    map_to: Optional[str]
    source_file: str
    structural_path: str


@dataclass
class DependencyGraph:
    generation: int
    files: List[FileRecord]
    edges: List[FileReference] = field(default_factory=list)
    referenced: Set[str] = field(default_factory=set)
    always_keep: Set[str] = field(default_factory=set)
    roots: Set[str] = field(default_factory=set)
    material_definitions: List[MaterialDefinition] = field(default_factory=list)
    used_materials: Set[str] = field(default_factory=set)

    def referencing(self, key: str) -> List[str]:
        return sorted({e.source_file for e in self.edges if e.target_key == key})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "generation": self.generation,
            "nodes": [
                {
                    "id": f.rel_path,
                    "role": f.role,
                    "kind": f.kind.value if f.kind else None,
                    "referenced": f.key in self.referenced,
                    "always_keep": f.key in self.always_keep,
                }
                for f in self.files
            ],
            "edges": [
                {
                    "src": e.source_file,
                    "dst": e.target_key,
                    "path": e.structural_path,
                    "material": e.material,
                }
                for e in self.edges
            ],
        }


@dataclass
class DeleteCandidate:
    full_path: str
    rel_path: str
    size_mb: float
    preselected: bool = True


@dataclass
class PositionField:
    source_file: str
    structural_path: str
    numbers: List[JsonNumber]
    new_values: List[Decimal] = field(default_factory=list)
