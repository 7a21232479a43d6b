"""
Reference extraction per document kind.

Only keys known to hold resource paths are looked at, so labels or numbers
that happen to look like paths never become edges. Material names are
collected separately: a material keeps its textures alive through the
materials file that defines it, not through the object that uses it.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List, Optional

from ...models.errors import UnresolvedReferenceWarning
from ...models.schema import (
    DocumentKind,
    FileReference,
    JsonArray,
    JsonObject,
    JsonString,
    MaterialDefinition,
    MaterialUse,
    ParsedDocument,
)
from ...runtime.paths import PathResolver
from ...utils.diagnostics import DiagnosticLog

# scene objects (items.level.json, prefabs)
SCENE_FILE_KEYS = frozenset({
    "shapeName",
    "filename",
    "fileName",
    "texture",
    "foamTex",
    "rippleTex",
    "depthGradientTex",
    "colorizeGradientFile",
    "ambientScaleGradientFile",
    "fogScaleGradientFile",
    "nightFogGradientFile",
    "nightGradientFile",
    "sunScaleGradientFile",
    "terrainFile",
    "cubemap",
    "flareTexture",
})
SCENE_MATERIAL_KEYS = frozenset({"material", "sideMaterial", "topMaterial", "bottomMaterial"})

# material stages and terrain materials
MATERIAL_MAP_KEYS = frozenset({
    "ambientOcclusionMap",
    "baseColorMap",
    "baseColorPaletteMap",
    "baseColorDetailMap",
    "detailMap",
    "detailNormalMap",
    "normalMap",
    "normalDetailMap",
    "overlayMap",
    "roughnessMap",
    "colorMap",
    "specularMap",
    "reflectivityMap",
    "metallicMap",
    "opacityMap",
    "colorPaletteMap",
    "emissiveMap",
    "clearCoatMap",
    "clearCoatBottomNormalMap",
    "diffuseMap",
    "macroMap",
})
MANAGED_FILE_KEYS = frozenset({"shapeFile", "shapeName", "texture"})

# engine placeholders such as "#ssao" or "$dynamiccubemap" are not files
_PLACEHOLDER_PREFIXES = ("#", "$", "@")


def _is_material_map_key(key: str) -> bool:
    return key in MATERIAL_MAP_KEYS or key.endswith("Map") or key.endswith("Tex")


@dataclass
class DocumentReferences:
    source_file: str
    references: List[FileReference] = field(default_factory=list)
    material_uses: List[MaterialUse] = field(default_factory=list)
    material_definitions: List[MaterialDefinition] = field(default_factory=list)
    unresolved: List[str] = field(default_factory=list)


class _Collector:
    def __init__(self, doc: ParsedDocument, resolver: PathResolver, log: Optional[DiagnosticLog]):
        self.doc = doc
        self.resolver = resolver
        self.log = log
        self.out = DocumentReferences(source_file=doc.rel_path)

    def file(self, path: str, value: str, material: Optional[str] = None, quiet: bool = False) -> None:
        value = value.strip()
        if not value or value.startswith(_PLACEHOLDER_PREFIXES):
            return
        key = self.resolver.resolve(value, self.doc.rel_path)
        if key is None:
            if quiet:
                return
            self.out.unresolved.append(value)
            if self.log is not None:
                self.log.warning(
                    f"Unresolved reference '{value}' in {self.doc.rel_path} at {path}",
                    code=UnresolvedReferenceWarning.__name__,
                    source_file=self.doc.rel_path,
                )
            return
        self.out.references.append(
            FileReference(
                source_file=self.doc.rel_path,
                structural_path=path,
                target_key=key,
                raw_value=value,
                material=material,
            )
        )

    def material(self, path: str, name: str) -> None:
        name = name.strip()
        if name:
            self.out.material_uses.append(MaterialUse(source_file=self.doc.rel_path, structural_path=path, name=name))


def _scene_object(c: _Collector, obj: JsonObject, path: str) -> None:
    for m in obj.effective():
        p = f"{path}.{m.key}"
        v = m.value
        if m.key in SCENE_FILE_KEYS and isinstance(v, JsonString):
            c.file(p, v.value)
        elif m.key in SCENE_MATERIAL_KEYS and isinstance(v, JsonString):
            c.material(p, v.value)
        elif m.key == "children" and isinstance(v, JsonArray):
            for i, child in enumerate(v.items):
                if isinstance(child, JsonObject):
                    _scene_object(c, child, f"{p}[{i}]")
        elif m.key == "types" and isinstance(v, JsonArray):
            # ground cover layers
            for i, t in enumerate(v.items):
                if isinstance(t, JsonObject):
                    shape = t.get_str("shapeFilename")
                    if shape:
                        c.file(f"{p}[{i}].shapeFilename", shape)


def _material_maps(c: _Collector, obj: JsonObject, path: str, owner: str) -> None:
    for m in obj.effective():
        p = f"{path}.{m.key}"
        v = m.value
        if isinstance(v, JsonString) and _is_material_map_key(m.key):
            c.file(p, v.value, material=owner)
        elif m.key == "Stages" and isinstance(v, JsonArray):
            for i, stage in enumerate(v.items):
                if isinstance(stage, JsonObject):
                    _material_maps(c, stage, f"{p}[{i}]", owner)
        elif m.key == "cubeFace" and isinstance(v, JsonArray):
            for i, face in enumerate(v.items):
                if isinstance(face, JsonString):
                    c.file(f"{p}[{i}]", face.value, material=owner)


def _materials(c: _Collector, root: JsonObject) -> None:
    for m in root.effective():
        if not isinstance(m.value, JsonObject):
            continue
        path = f"0.{m.key}"
        defn = m.value
        name = defn.get_str("name") or m.key
        c.out.material_definitions.append(
            MaterialDefinition(name=name, map_to=defn.get_str("mapTo"), source_file=c.doc.rel_path, structural_path=path)
        )
        internal = defn.get_str("internalName")
        if internal and internal != name:
            c.out.material_definitions.append(
                MaterialDefinition(name=internal, map_to=None, source_file=c.doc.rel_path, structural_path=path)
            )
        _material_maps(c, defn, path, name)


def _level_info(c: _Collector, root: JsonObject) -> None:
    previews = root.get("previews")
    if isinstance(previews, JsonArray):
        for i, item in enumerate(previews.items):
            if isinstance(item, JsonString):
                c.file(f"0.previews[{i}]", item.value)
    for key, field_name in (("spawnPoints", "preview"), ("gasStationPoints", "preview"), ("minimap", "file")):
        items = root.get(key)
        if not isinstance(items, JsonArray):
            continue
        for i, item in enumerate(items.items):
            if isinstance(item, JsonObject):
                value = item.get_str(field_name)
                if value:
                    c.file(f"0.{key}[{i}].{field_name}", value)


def _terrain(c: _Collector, root: JsonObject) -> None:
    for key in ("datafile", "heightmapImage"):
        value = root.get_str(key)
        if value:
            c.file(f"0.{key}", value)
    materials = root.get("materials")
    if isinstance(materials, JsonArray):
        for i, item in enumerate(materials.items):
            if isinstance(item, JsonString):
                c.material(f"0.materials[{i}]", item.value)


def _managed_data(c: _Collector, root: JsonObject) -> None:
    for m in root.effective():
        if not isinstance(m.value, JsonObject):
            continue
        path = f"0.{m.key}"
        for f in m.value.effective():
            if f.key in MANAGED_FILE_KEYS and isinstance(f.value, JsonString):
                c.file(f"{path}.{f.key}", f.value.value)
            elif f.key == "material" and isinstance(f.value, JsonString):
                c.material(f"{path}.{f.key}", f.value.value)


def _facilities(c: _Collector, root: JsonObject) -> None:
    # {"garages": [{"preview": ...}], "gasStations": [...], ...}
    for m in root.effective():
        if not isinstance(m.value, JsonArray):
            continue
        for i, item in enumerate(m.value.items):
            if isinstance(item, JsonObject):
                value = item.get_str("preview")
                if value:
                    c.file(f"0.{m.key}[{i}].preview", value)


def _script(c: _Collector, text: str) -> None:
    """
    Every double-quoted string of a TorqueScript file that names an existing
    file. Scripts quote far more than paths, so misses stay silent.
    """
    for n, line in enumerate(text.splitlines(), start=1):
        if '"' not in line:
            continue
        for value in line.split('"')[1::2]:
            value = value.strip()
            if value.startswith("./"):
                value = value[2:]
            if "/" in value or "." in value:
                c.file(f"line{n}", value, quiet=True)


_ROOT_OBJECT_HANDLERS: dict = {
    DocumentKind.MATERIALS: _materials,
    DocumentKind.LEVEL_INFO: _level_info,
    DocumentKind.TERRAIN: _terrain,
    DocumentKind.MANAGED_DATA: _managed_data,
    DocumentKind.FACILITIES: _facilities,
}


def extract_references(
    doc: ParsedDocument,
    resolver: PathResolver,
    log: Optional[DiagnosticLog] = None,
) -> DocumentReferences:
    c = _Collector(doc, resolver, log)
    kind = doc.kind

    if kind in (DocumentKind.MISSION_GROUP, DocumentKind.PREFAB):
        for i, entry in enumerate(doc.entries):
            if isinstance(entry, JsonObject):
                _scene_object(c, entry, str(i))
    elif kind == DocumentKind.MESH:
        for i, name in enumerate(doc.material_names):
            c.material(f"material[{i}]", name)
    elif kind == DocumentKind.SCRIPT:
        _script(c, doc.text)
    elif kind in _ROOT_OBJECT_HANDLERS:
        handler: Callable[[_Collector, JsonObject], None] = _ROOT_OBJECT_HANDLERS[kind]
        if doc.entries and isinstance(doc.entries[0], JsonObject):
            handler(c, doc.entries[0])
    # decals and forest files only carry positions
    return c.out
