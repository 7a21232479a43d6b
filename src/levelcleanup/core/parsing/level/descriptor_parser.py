from typing import List, Optional

from ....models.errors import FormatError
from ....models.schema import JsonObject, Node
from ....utils.diagnostics import DiagnosticLog
from ..tolerant_json import parse_json_text


def parse_descriptor(text: str, source: str, log: Optional[DiagnosticLog] = None) -> List[Node]:
    """
    Single-object descriptors: info.json, *.terrain.json and the managed
    item/decal data files.
    """
    if not text.strip():
        return []
    root = parse_json_text(text, source, log)
    if not isinstance(root, JsonObject):
        raise FormatError(source, "expected a JSON object")
    return [root]
