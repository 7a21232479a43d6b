from typing import List, Optional, Tuple

from ....models.schema import JsonArray, JsonObject, Node
from ....utils.diagnostics import DiagnosticLog
from ..tolerant_json import parse_json_stream, parse_json_text


def parse_scene_objects(text: str, source: str, log: Optional[DiagnosticLog] = None) -> Tuple[List[Node], bool]:
    """
    Newline-delimited scene files (items.level.json, *.prefab.json, *.forest4.json).

    One object per line is the usual layout, but older exports wrap the
    objects in a single array; both come back as a flat list of objects.
    """
    values, damaged = parse_json_stream(text, source, log)
    entries: List[Node] = []
    for v in values:
        if isinstance(v, JsonArray):
            entries.extend(i for i in v.items if isinstance(i, JsonObject))
        else:
            entries.append(v)
    return entries, damaged


def parse_decals(text: str, source: str, log: Optional[DiagnosticLog] = None) -> List[Node]:
    """main.decals.json is one object: {"header": {...}, "instances": {"<decal>": [[...], ...]}}"""
    return [parse_json_text(text, source, log)]
