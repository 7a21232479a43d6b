from typing import List, Optional

from ....models.errors import FormatError
from ....models.schema import JsonObject, Node
from ....utils.diagnostics import DiagnosticLog
from ..tolerant_json import parse_json_text


def parse_materials(text: str, source: str, log: Optional[DiagnosticLog] = None) -> List[Node]:
    """A materials file maps material names to definitions. An empty file defines nothing."""
    if not text.strip():
        return []
    root = parse_json_text(text, source, log)
    if not isinstance(root, JsonObject):
        raise FormatError(source, "expected an object of material definitions")
    return [root]
