from __future__ import annotations

from pathlib import Path

from levelcleanup.core.discovery.level_scanner import scan_level
from levelcleanup.core.extraction.references import extract_references
from levelcleanup.core.parsing.documents import parse_document
from levelcleanup.core.parsing.mesh.collada_parser import parse_collada_materials
from levelcleanup.core.pipeline.level_session import make_resolver
from levelcleanup.utils.diagnostics import DiagnosticLog

from conftest import ROCK_DAE


def _extract(root: Path, rel: str, config: dict, log: DiagnosticLog = None):
    log = log if log is not None else DiagnosticLog()
    tree = scan_level(root, config, log)
    record = tree.index()[rel.casefold()]
    doc = parse_document(record, log)
    return extract_references(doc, make_resolver(tree, config), log)


def test_scene_objects_reference_shapes_and_use_materials(sample_level: Path, config: dict) -> None:
    out = _extract(sample_level, "main/MissionGroup/items.level.json", config)

    targets = {(e.structural_path, e.target_key) for e in out.references}
    assert ("1.shapeName", "art/shapes/rock.dae") in targets
    assert ("3.filename", "art/prefabs/house.prefab.json") in targets
    assert [u.name for u in out.material_uses] == ["road_mat"]


def test_nested_children_are_followed(make_level, config: dict) -> None:
    root = make_level({
        "info.json": "{}",
        "main/items.level.json": '{"class":"SimGroup","children":[{"class":"TSStatic","shapeName":"a.dae"}]}',
        "a.dae": "<COLLADA/>",
    })
    out = _extract(root, "main/items.level.json", config)
    assert [(e.structural_path, e.target_key) for e in out.references] == [("0.children[0].shapeName", "a.dae")]


def test_numeric_and_label_fields_are_not_references(make_level, config: dict) -> None:
    root = make_level({
        "info.json": "{}",
        "main/items.level.json": '{"class":"TSStatic","name":"art/a.png","internalName":"b.png","scale":[1,1,1]}',
        "art/a.png": b"png",
        "b.png": b"png",
    })
    out = _extract(root, "main/items.level.json", config)
    assert out.references == []


def test_unresolved_reference_is_a_warning_not_an_edge(make_level, config: dict) -> None:
    log = DiagnosticLog()
    root = make_level({
        "info.json": "{}",
        "main/items.level.json": '{"class":"TSStatic","shapeName":"art/missing.dae"}',
    })
    out = _extract(root, "main/items.level.json", config, log)

    assert out.references == []
    assert out.unresolved == ["art/missing.dae"]
    warnings = log.with_code("UnresolvedReferenceWarning")
    assert len(warnings) == 1
    assert "art/missing.dae" in warnings[0].message


def test_material_textures_carry_their_material(sample_level: Path, config: dict) -> None:
    out = _extract(sample_level, "art/shapes/materials.json", config)

    assert [(e.structural_path, e.target_key, e.material) for e in out.references] == [
        ("0.rock_mat.Stages[0].baseColorMap", "art/shapes/rock_d.png", "rock_mat"),
    ]
    assert [(d.name, d.map_to) for d in out.material_definitions] == [("rock_mat", "rock_mat")]


def test_material_top_level_maps_and_cubemap_faces(make_level, config: dict) -> None:
    root = make_level({
        "info.json": "{}",
        "art/main.materials.json": (
            '{"grass": {"class": "TerrainMaterial", "internalName": "Grass", "baseColorBaseTex": "grass_b.png",'
            ' "annotation": "GRASS"},'
            ' "sky": {"class": "CubemapData", "cubeFace": ["sky_0.png", "sky_1.png"]}}'
        ),
        "art/grass_b.png": b"png",
        "art/sky_0.png": b"png",
        "art/sky_1.png": b"png",
    })
    out = _extract(root, "art/main.materials.json", config)

    assert sorted(e.target_key for e in out.references) == ["art/grass_b.png", "art/sky_0.png", "art/sky_1.png"]
    assert {d.name for d in out.material_definitions} == {"grass", "Grass", "sky"}


def test_level_info_previews_and_minimap(make_level, config: dict) -> None:
    root = make_level({
        "info.json": (
            '{"previews": ["p1.jpg"], "spawnPoints": [{"preview": "spawn.jpg"}],'
            ' "minimap": [{"file": "art/minimap.png"}]}'
        ),
        "p1.jpg": b"jpg",
        "spawn.jpg": b"jpg",
        "art/minimap.png": b"png",
    })
    out = _extract(root, "info.json", config)
    assert sorted(e.target_key for e in out.references) == ["art/minimap.png", "p1.jpg", "spawn.jpg"]


def test_terrain_and_managed_data(make_level, config: dict) -> None:
    root = make_level({
        "info.json": "{}",
        "theterrain.terrain.json": (
            '{"datafile": "/levels/testlevel/theterrain.ter", "heightmapImage": "hm.png", "materials": ["Grass"]}'
        ),
        "theterrain.ter": b"ter",
        "hm.png": b"png",
        "art/managedItemData.json": '{"tree1": {"class": "TSForestItemData", "shapeFile": "trees/tree1.dae"}}',
        "art/trees/tree1.dae": "<COLLADA/>",
        "art/managedDecalData.json": '{"tread": {"class": "DecalData", "material": "tread_mat"}}',
    })
    terrain = _extract(root, "theterrain.terrain.json", config)
    assert sorted(e.target_key for e in terrain.references) == ["hm.png", "theterrain.ter"]
    assert [u.name for u in terrain.material_uses] == ["Grass"]

    items = _extract(root, "art/managedItemData.json", config)
    assert [e.target_key for e in items.references] == ["art/trees/tree1.dae"]

    decals = _extract(root, "art/managedDecalData.json", config)
    assert [u.name for u in decals.material_uses] == ["tread_mat"]


def test_script_quoted_paths(make_level, config: dict) -> None:
    log = DiagnosticLog()
    root = make_level({
        "info.json": "{}",
        "scripts/main.cs": (
            'exec("./helper.cs");\n'
            'new TSStatic(crate) {\n'
            '   shapeName = "levels/testlevel/art/crate.dae";\n'
            '   skin = "$default";\n'
            '};\n'
            'echo("Loading level...");\n'
            'new Material(m) { diffuseMap[0] = "art/crate_d"; };\n'
        ),
        "scripts/helper.cs": "// nothing\n",
        "art/crate.dae": "<COLLADA/>",
        "art/crate_d.png": b"png",
    })
    out = _extract(root, "scripts/main.cs", config, log)

    assert [(e.structural_path, e.target_key) for e in out.references] == [
        ("line1", "scripts/helper.cs"),
        ("line3", "art/crate.dae"),
    ]
    # quoted text that is not a file is not reported
    assert out.unresolved == []
    assert log.with_code("UnresolvedReferenceWarning") == []


def test_facilities_previews(make_level, config: dict) -> None:
    root = make_level({
        "info.json": "{}",
        "facilities/facilities.json": (
            '{"garages": [{"name": "Garage", "preview": "garage.jpg"}],'
            ' "gasStations": [{"name": "Fuel", "preview": "/levels/testlevel/facilities/fuel.jpg"}, {"name": "x"}],'
            ' "version": 2}'
        ),
        "facilities/garage.jpg": b"jpg",
        "facilities/fuel.jpg": b"jpg",
    })
    out = _extract(root, "facilities/facilities.json", config)
    assert [(e.structural_path, e.target_key) for e in out.references] == [
        ("0.garages[0].preview", "facilities/garage.jpg"),
        ("0.gasStations[0].preview", "facilities/fuel.jpg"),
    ]


def test_collada_material_names_use_the_first_word() -> None:
    names, err = parse_collada_materials(ROCK_DAE)
    assert err == ""
    assert names == ["rock_mat"]


def test_collada_parse_error_is_reported() -> None:
    names, err = parse_collada_materials("<COLLADA><broken></COLLADA>")
    assert names == []
    assert err.startswith("xml_parse_error:")
