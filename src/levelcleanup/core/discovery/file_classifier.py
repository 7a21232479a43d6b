from pathlib import Path
from typing import Iterable, Optional, Tuple

from ...models.schema import DocumentKind

def classify(path: str) -> Optional[DocumentKind]:
    """Recognised document kind by file name, or None for assets and unknown files."""
    name = Path(path).name.lower()

    # by filename
    if name == "info.json":
        return DocumentKind.LEVEL_INFO
    if name == "items.level.json":
        return DocumentKind.MISSION_GROUP
    if name in ("manageditemdata.json", "manageddecaldata.json"):
        return DocumentKind.MANAGED_DATA
    if name == "main.decals.json":
        return DocumentKind.DECALS
    if name == "facilities.json":
        return DocumentKind.FACILITIES

    # by suffix
    if name.endswith(".prefab.json"):
        return DocumentKind.PREFAB
    if name.endswith(("materials.json", "material.json")):
        return DocumentKind.MATERIALS
    if name.endswith(".terrain.json"):
        return DocumentKind.TERRAIN
    if name.endswith(".forest4.json"):
        return DocumentKind.FOREST
    if name.endswith(".dae"):
        return DocumentKind.MESH
    if name.endswith(".cs"):
        return DocumentKind.SCRIPT
    return None

def has_extension(path: str, extensions: Iterable[str]) -> bool:
    name = Path(path).name.lower()
    return any(name.endswith(ext.lower()) for ext in extensions)

def role_for(path: str, asset_extensions: Iterable[str]) -> Tuple[str, Optional[DocumentKind]]:
    kind = classify(path)
    if kind is not None:
        return "document", kind
    if has_extension(path, asset_extensions):
        return "asset", None
    return "unclassified", None
