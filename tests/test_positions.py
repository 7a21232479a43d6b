from __future__ import annotations

from decimal import Decimal
from pathlib import Path

import pytest

from levelcleanup.core.discovery.file_classifier import classify
from levelcleanup.core.parsing.documents import parse_document
from levelcleanup.core.pipeline.level_session import read_level, shift_positions
from levelcleanup.core.rewrite.positions import format_number, plan_rewrite, rewrite_positions, to_offset
from levelcleanup.models.errors import RewriteError
from levelcleanup.models.schema import FileRecord, JsonNumber, ParsedDocument, to_plain
from levelcleanup.runtime.paths import path_key
from levelcleanup.utils.diagnostics import DiagnosticLog

from conftest import ITEMS_LEVEL


def _doc(tmp_path: Path, rel: str, text: str) -> ParsedDocument:
    p = tmp_path / rel
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    record = FileRecord(
        path=str(p),
        rel_path=rel,
        key=path_key(rel),
        size_bytes=p.stat().st_size,
        role="document",
        kind=classify(rel),
    )
    return parse_document(record, DiagnosticLog())


def _num(raw: str) -> JsonNumber:
    return JsonNumber(raw=raw, value=Decimal(raw), start=0, end=len(raw))


@pytest.mark.parametrize(
    "raw, delta, expected",
    [
        ("1.50", "1", "2.50"),
        ("2", "0.25", "2.25"),
        ("1.1", "0.005", "1.105"),
        ("-1.5", "1.5", "0.0"),
        ("100", "-250", "-150"),
        ("1e2", "1", "101"),
    ],
)
def test_format_number_keeps_precision_and_never_rounds(raw: str, delta: str, expected: str) -> None:
    n = _num(raw)
    assert format_number(n, n.value + Decimal(delta)) == expected


def test_mission_group_shift(tmp_path: Path) -> None:
    doc = _doc(tmp_path, "main/items.level.json", ITEMS_LEVEL)
    plans = rewrite_positions([doc], 10, 0, -1)

    assert len(plans) == 1
    plan = plans[0]
    # rock position, two road nodes, one inserted prefab position
    assert len(plan.fields) == 3
    assert len(plan.inserted) == 1
    assert plan.changed == 4

    lines = plan.new_text.splitlines()
    assert lines[0] == '{"name":"MissionGroup","class":"SimGroup","persistentId":"a1"}'
    assert lines[1].endswith('"position":[11.5,2,-4.25]}')
    assert lines[2].endswith('"nodes":[[10,0,-1,5],[20.5,0,-1,5]]}')
    assert lines[3].endswith('"filename":"art/prefabs/house.prefab.json","position":[10,0,-1]}')
    assert plan.new_text.endswith("\n")


def test_zero_offset_changes_nothing(tmp_path: Path) -> None:
    doc = _doc(tmp_path, "main/items.level.json", ITEMS_LEVEL)
    log = DiagnosticLog()
    assert rewrite_positions([doc], 0, "0", 0.0, log) == []
    assert [d.message for d in log.entries] == ["Offset is zero; no positions changed"]


def test_null_offset_leaves_the_level_byte_identical(sample_level: Path, config: dict) -> None:
    before = {p: p.read_bytes() for p in sample_level.rglob("*") if p.is_file()}
    reading = read_level(sample_level, config, DiagnosticLog())

    result = shift_positions(reading.tree, 0, 0, 0, config, DiagnosticLog())

    assert result.changed == 0
    assert result.files == []
    assert {p: p.read_bytes() for p in before} == before


def test_shift_there_and_back_restores_values(tmp_path: Path) -> None:
    text = '{"class":"TSStatic","position":[1.5,-2,0.125]}\n{"class":"TSStatic","position":[7,8,9]}\n'
    doc = _doc(tmp_path, "main/items.level.json", text)
    original = [to_plain(e) for e in doc.entries]

    there = plan_rewrite(doc, to_offset("0.25", "-3.1", "1000"))
    moved = _doc(tmp_path, "main/items.level.json", there.new_text)
    back = plan_rewrite(moved, to_offset("-0.25", "3.1", "-1000"))
    restored = _doc(tmp_path, "main/items.level.json", back.new_text)

    assert [to_plain(e) for e in restored.entries] == original


def test_only_the_effective_duplicate_position_is_shifted(tmp_path: Path) -> None:
    doc = _doc(tmp_path, "main/items.level.json", '{"class":"TSStatic","position":[1,1,1],"position":[2,2,2]}\n')
    plan = plan_rewrite(doc, to_offset(1, 0, 0))
    assert plan.new_text == '{"class":"TSStatic","position":[1,1,1],"position":[3,2,2]}\n'
    assert plan.inserted == []


def test_decal_instances_and_forest_items(tmp_path: Path) -> None:
    decals = _doc(
        tmp_path,
        "main.decals.json",
        '{"header":{"name":"DecalData File","version":1},'
        '"instances":{"tread":[[0,1,0.5,100.0,200.0,3.5,0,0,1]]}}',
    )
    forest = _doc(tmp_path, "art/forest/trees.forest4.json", '{"type":"tree1","pos":[1,2,3],"scale":1}\n')
    prefab = _doc(tmp_path, "art/house.prefab.json", '{"class":"TSStatic","position":[0,0,0]}\n')

    plans = {p.doc.rel_path: p for p in rewrite_positions([prefab, forest, decals], 1, 2, 3)}

    # prefab contents are relative to their Prefab object
    assert sorted(plans) == ["art/forest/trees.forest4.json", "main.decals.json"]
    assert plans["main.decals.json"].new_text.endswith('"tread":[[0,1,0.5,101.0,202.0,6.5,0,0,1]]}}')
    assert plans["main.decals.json"].fields[0].structural_path == "0.instances.tread[0]"
    assert plans["art/forest/trees.forest4.json"].new_text == '{"type":"tree1","pos":[2,4,6],"scale":1}\n'


def test_malformed_file_is_skipped_and_the_rest_is_shifted(tmp_path: Path) -> None:
    bad = _doc(tmp_path, "main/a/items.level.json", '{"class":"TSStatic","position":[1,2,3]}\n{"class":"TSStatic","position":[1,2]}\n')
    good = _doc(tmp_path, "main/b/items.level.json", '{"class":"TSStatic","position":[1,2,3]}\n')
    log = DiagnosticLog()

    plans = rewrite_positions([bad, good], 1, 1, 1, log)

    assert [p.doc.rel_path for p in plans] == ["main/b/items.level.json"]
    errors = log.with_code("RewriteError")
    assert len(errors) == 1
    assert errors[0].source_file == "main/a/items.level.json"


def test_damaged_document_is_not_rewritten(tmp_path: Path) -> None:
    doc = _doc(tmp_path, "main/items.level.json", '{"class":"TSStatic","position":[1,2,3]}\n{broken\n')
    assert doc.damaged
    with pytest.raises(RewriteError):
        plan_rewrite(doc, to_offset(1, 0, 0))


def test_bad_node_list_fails_the_whole_file(tmp_path: Path) -> None:
    doc = _doc(
        tmp_path,
        "main/items.level.json",
        '{"class":"DecalRoad","nodes":[[0,0,0,5],["x",0,0,5]],"position":[0,0,0]}\n',
    )
    with pytest.raises(RewriteError, match=r"nodes\[1\]"):
        plan_rewrite(doc, to_offset(1, 0, 0))


def test_shift_writes_files_and_logs(sample_level: Path, config: dict) -> None:
    reading = read_level(sample_level, config, DiagnosticLog())
    generation = reading.tree.generation

    result = shift_positions(reading.tree, 1, 0, 0, config, DiagnosticLog())

    assert sorted(result.files) == [
        "art/forest/trees.forest4.json",
        "main.decals.json",
        "main/MissionGroup/items.level.json",
    ]
    assert result.changed == 6
    assert reading.tree.generation == generation + 1
    assert (sample_level / "art/forest/trees.forest4.json").read_text(encoding="utf-8") == '{"type":"tree1","pos":[2,2,3],"scale":1}\n'
    # prefab contents stay put
    assert "[0,0,0]" in (sample_level / "art/prefabs/house.prefab.json").read_text(encoding="utf-8")
    assert (sample_level.parent / "ShiftPositions_Errors.txt").read_text(encoding="utf-8") == ""
    assert (sample_level.parent / "ShiftPositions_Warnings.txt").exists()
