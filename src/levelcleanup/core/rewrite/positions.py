"""
Coordinate shift for scene documents.

Numbers are patched in place inside the original text: only the digits of a
position change, everything else (key order, spacing, comments) stays as it
was. Arithmetic is done in Decimal so repeated shifts do not drift.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from ...models.errors import FormatError, RewriteError
from ...models.schema import (
    POSITION_KINDS,
    DocumentKind,
    JsonArray,
    JsonNumber,
    JsonObject,
    ParsedDocument,
    PositionField,
    number_triplet,
)
from ...utils.diagnostics import DiagnosticLog
from ..parsing.tolerant_json import parse_json_stream

logger = logging.getLogger(__name__)

POSITION_KEYS = ("position", "pos")
# objects the game places at the origin when they have no position
POSITIONED_CLASSES = ("TSStatic", "Prefab")

Offset = Tuple[Decimal, Decimal, Decimal]


@dataclass
class FileRewrite:
    doc: ParsedDocument
    fields: List[PositionField] = field(default_factory=list)
    inserted: List[Tuple[int, str]] = field(default_factory=list)  # (offset in text, snippet)
    new_text: str = ""
    written: bool = False

    @property
    def changed(self) -> int:
        return len(self.fields) + len(self.inserted)


def to_offset(dx, dy, dz) -> Offset:
    return Decimal(str(dx)), Decimal(str(dy)), Decimal(str(dz))


def _decimal_places(raw: str) -> int:
    mantissa = raw.lower().split("e", 1)[0]
    if "." not in mantissa:
        return 0
    return len(mantissa.split(".", 1)[1])


def format_number(original: JsonNumber, value: Decimal) -> str:
    """
    Keep the source's number of decimals when the result fits in it exactly,
    otherwise write every digit of the result. Never rounds.
    """
    places = _decimal_places(original.raw)
    if "e" in original.raw.lower():
        places = max(0, -original.value.as_tuple().exponent)
    try:
        q = value.quantize(Decimal(1).scaleb(-places))
    except ArithmeticError:
        q = value
    text = format(q if q == value else value, "f")
    if text.startswith("-") and Decimal(text) == 0:
        text = text[1:]
    return text


def _field(source: str, path: str, numbers: Sequence[JsonNumber], offset: Offset) -> PositionField:
    return PositionField(
        source_file=source,
        structural_path=path,
        numbers=list(numbers),
        new_values=[n.value + o for n, o in zip(numbers, offset)],
    )


def _triplet_field(source: str, path: str, node, offset: Offset) -> PositionField:
    nums = number_triplet(node)
    if nums is None:
        raise RewriteError(source, f"{path} is not a list of three numbers")
    return _field(source, path, nums, offset)


def _scene_object(doc: ParsedDocument, obj: JsonObject, path: str, offset: Offset, plan: FileRewrite) -> None:
    source = doc.rel_path
    has_position = False
    for m in obj.effective():
        p = f"{path}.{m.key}"
        if m.key in POSITION_KEYS:
            plan.fields.append(_triplet_field(source, p, m.value, offset))
            has_position = has_position or m.key == "position"
        elif m.key == "nodes" and doc.kind == DocumentKind.MISSION_GROUP:
            if not isinstance(m.value, JsonArray):
                raise RewriteError(source, f"{p} is not a list of nodes")
            for i, node in enumerate(m.value.items):
                head = node.items[:3] if isinstance(node, JsonArray) else []
                if len(head) < 3 or not all(isinstance(n, JsonNumber) for n in head):
                    raise RewriteError(source, f"{p}[{i}] does not start with three numbers")
                plan.fields.append(_field(source, f"{p}[{i}]", head, offset))
        elif m.key == "children" and isinstance(m.value, JsonArray):
            for i, child in enumerate(m.value.items):
                if isinstance(child, JsonObject):
                    _scene_object(doc, child, f"{p}[{i}]", offset, plan)

    if doc.kind == DocumentKind.MISSION_GROUP and not has_position and obj.get_str("class") in POSITIONED_CLASSES:
        snippet = '"position":[' + ",".join(format(o, "f") for o in offset) + "]"
        members = obj.members
        if members:
            plan.inserted.append((members[-1].value.end, "," + snippet))
        else:
            plan.inserted.append((obj.start + 1, snippet))


def _decals(doc: ParsedDocument, offset: Offset, plan: FileRewrite) -> None:
    source = doc.rel_path
    root = doc.entries[0] if doc.entries else None
    if not isinstance(root, JsonObject):
        return
    instances = root.get("instances")
    if instances is None:
        return
    if not isinstance(instances, JsonObject):
        raise RewriteError(source, "instances is not an object")
    for m in instances.effective():
        p = f"0.instances.{m.key}"
        if not isinstance(m.value, JsonArray):
            raise RewriteError(source, f"{p} is not a list of instances")
        for i, inst in enumerate(m.value.items):
            # [rectSize, tangent?, ..., x, y, z, ...]: the position is at 3..5
            values = inst.items[3:6] if isinstance(inst, JsonArray) else []
            if len(values) < 3 or not all(isinstance(n, JsonNumber) for n in values):
                raise RewriteError(source, f"{p}[{i}] has no position at index 3-5")
            plan.fields.append(_field(source, f"{p}[{i}]", values, offset))


def collect_position_fields(doc: ParsedDocument, offset: Offset) -> FileRewrite:
    """Locate every position in ``doc``. Raises RewriteError if any of them is malformed."""
    if doc.damaged:
        raise RewriteError(doc.rel_path, "document has unreadable lines and cannot be rewritten safely")
    plan = FileRewrite(doc=doc)
    if doc.kind == DocumentKind.DECALS:
        _decals(doc, offset, plan)
    else:
        for i, entry in enumerate(doc.entries):
            if isinstance(entry, JsonObject):
                _scene_object(doc, entry, str(i), offset, plan)
    return plan


def render_rewrite(plan: FileRewrite) -> str:
    doc = plan.doc
    edits: List[Tuple[int, int, str]] = []
    for f in plan.fields:
        for num, value in zip(f.numbers, f.new_values):
            if value != num.value:
                edits.append((num.start, num.end, format_number(num, value)))
    for pos, snippet in plan.inserted:
        edits.append((pos, pos, snippet))

    text = doc.text
    for start, end, replacement in sorted(edits, key=lambda e: (e[0], e[1]), reverse=True):
        text = text[:start] + replacement + text[end:]
    return text


def plan_rewrite(doc: ParsedDocument, offset: Offset) -> FileRewrite:
    """All-or-nothing: either every field of the file is rewritten, or RewriteError is raised."""
    plan = collect_position_fields(doc, offset)
    if not plan.changed:
        plan.new_text = doc.text
        return plan
    plan.new_text = render_rewrite(plan)
    try:
        _, damaged = parse_json_stream(plan.new_text, doc.rel_path)
    except FormatError as e:
        raise RewriteError(doc.rel_path, f"rewritten text does not parse: {e}")
    if damaged:
        raise RewriteError(doc.rel_path, "rewritten text does not parse")
    return plan


def rewrite_positions(
    documents: Sequence[ParsedDocument],
    dx,
    dy,
    dz,
    log: Optional[DiagnosticLog] = None,
) -> List[FileRewrite]:
    """
    Compute the shifted text of every scene document. A file that cannot be
    rewritten safely is reported as an error and left out; the others go on.
    A zero offset changes nothing.
    """
    offset = to_offset(dx, dy, dz)
    if not any(offset):
        if log is not None:
            log.info("Offset is zero; no positions changed")
        return []

    plans: List[FileRewrite] = []
    for doc in sorted(documents, key=lambda d: d.rel_path.casefold()):
        if doc.kind not in POSITION_KINDS:
            continue
        try:
            plan = plan_rewrite(doc, offset)
        except RewriteError as e:
            if log is not None:
                log.error(str(e), code=RewriteError.__name__, source_file=doc.rel_path)
            continue
        if plan.changed:
            plans.append(plan)
    logger.info("Planned %d position changes in %d file(s)", sum(p.changed for p in plans), len(plans))
    return plans
