from __future__ import annotations

import logging
from typing import Optional

from ...models.errors import FormatError
from ...models.schema import DocumentKind, FileRecord, JsonObject, ParsedDocument
from ...utils.diagnostics import DiagnosticLog
from ..discovery.content_loader import load_text
from .level.descriptor_parser import parse_descriptor
from .materials.materials_parser import parse_materials
from .mesh.collada_parser import parse_collada_materials
from .scene.scene_parser import parse_decals, parse_scene_objects

logger = logging.getLogger(__name__)


def parse_document(record: FileRecord, log: Optional[DiagnosticLog] = None) -> ParsedDocument:
    """Read and parse one recognised document. Raises FormatError when nothing usable can be read."""
    if record.kind is None:
        raise ValueError(f"{record.rel_path} is not a recognised document")
    try:
        text, encoding = load_text(record.path)
    except OSError as e:
        raise FormatError(record.rel_path, f"cannot read file: {e.strerror or e}")

    doc = ParsedDocument(
        path=record.path,
        rel_path=record.rel_path,
        kind=record.kind,
        text=text,
        encoding=encoding,
    )
    source = record.rel_path
    kind = record.kind

    if kind in (DocumentKind.MISSION_GROUP, DocumentKind.PREFAB, DocumentKind.FOREST):
        doc.entries, doc.damaged = parse_scene_objects(text, source, log)
    elif kind == DocumentKind.DECALS:
        doc.entries = parse_decals(text, source, log)
    elif kind == DocumentKind.MATERIALS:
        doc.entries = parse_materials(text, source, log)
    elif kind in (DocumentKind.LEVEL_INFO, DocumentKind.TERRAIN, DocumentKind.MANAGED_DATA, DocumentKind.FACILITIES):
        doc.entries = parse_descriptor(text, source, log)
        if kind == DocumentKind.LEVEL_INFO and doc.entries and isinstance(doc.entries[0], JsonObject):
            doc.title = doc.entries[0].get_str("title")
    elif kind == DocumentKind.MESH:
        names, err = parse_collada_materials(text)
        if err:
            raise FormatError(source, f"Collada format error: {err}")
        doc.material_names = names
    # scripts are scanned line by line from doc.text
    logger.debug("Parsed %s (%s): %d entries", source, kind.value, len(doc.entries))
    return doc
