from __future__ import annotations

from pathlib import Path
from typing import Callable, Dict, Union

import pytest

from levelcleanup.config.loader import load_config, package_root

Content = Union[str, bytes]

ROCK_DAE = """<?xml version="1.0" encoding="utf-8"?>
<COLLADA xmlns="http://www.collada.org/2005/11/COLLADASchema" version="1.4.1">
  <library_materials>
    <material id="rock_mat-material" name="rock_mat"/>
    <material id="rock_mat_001-material" name="rock_mat 001"/>
  </library_materials>
</COLLADA>
"""

HOUSE_DAE = """<?xml version="1.0" encoding="utf-8"?>
<COLLADA xmlns="http://www.collada.org/2005/11/COLLADASchema" version="1.4.1">
  <library_materials>
    <material id="house_mat-material" name="house_mat"/>
  </library_materials>
</COLLADA>
"""

ITEMS_LEVEL = "\n".join([
    '{"name":"MissionGroup","class":"SimGroup","persistentId":"a1"}',
    '{"name":"rock","class":"TSStatic","__parent":"MissionGroup","shapeName":"art/shapes/rock.dae","position":[1.5,2,-3.25]}',
    '{"name":"road","class":"DecalRoad","__parent":"MissionGroup","material":"road_mat","nodes":[[0,0,0,5],[10.5,0,0,5]]}',
    '{"name":"house","class":"Prefab","__parent":"MissionGroup","filename":"art/prefabs/house.prefab.json"}',
]) + "\n"

SAMPLE_LEVEL: Dict[str, Content] = {
    "info.json": '{"title": "Test Level", "previews": ["preview.jpg"]}',
    "preview.jpg": b"jpg",
    "mainLevel.lua": "-- level script\n",
    "main/MissionGroup/items.level.json": ITEMS_LEVEL,
    "main.decals.json": '{"header":{"name":"DecalData File","version":1},'
                        '"instances":{"tread":[[0,1,0.5,100.0,200.0,3.5,0,0,1]]}}',
    "art/forest/trees.forest4.json": '{"type":"tree1","pos":[1,2,3],"scale":1}\n',
    "art/shapes/rock.dae": ROCK_DAE,
    "art/shapes/rock.cdae": b"\x00cdae",
    "art/shapes/materials.json": '{"rock_mat": {"name": "rock_mat", "mapTo": "rock_mat",'
                                 ' "Stages": [{"baseColorMap": "rock_d.dds"}, {}]}}',
    "art/shapes/rock_d.png": b"png",
    "art/shapes/house.dae": HOUSE_DAE,
    "art/prefabs/house.prefab.json": '{"class":"TSStatic","shapeName":"/levels/testlevel/art/shapes/house.dae","position":[0,0,0]}\n',
    "art/prefabs/old.prefab.json": '{"class":"TSStatic","shapeName":"art/shapes/old.dae","position":[0,0,0]}\n',
    "art/shapes/old.dae": HOUSE_DAE,
    "art/road/materials.json": '{"road_mat": {"name": "road_mat", "Stages": [{"colorMap": "road_d.png"}]}}',
    "art/road/road_d.png": b"png",
    "art/unused.png": b"x" * 2048,
    "scripts/notes.md": "notes\n",
}


def write_files(root: Path, files: Dict[str, Content]) -> Path:
    for rel, content in files.items():
        p = root / rel
        p.parent.mkdir(parents=True, exist_ok=True)
        if isinstance(content, bytes):
            p.write_bytes(content)
        else:
            p.write_text(content, encoding="utf-8")
    return root


@pytest.fixture
def config() -> dict:
    return load_config(package_root())


@pytest.fixture
def make_level(tmp_path: Path) -> Callable[..., Path]:
    """Write ``files`` under ``<tmp>/levels/<name>`` and return the level root."""

    def _make(files: Dict[str, Content], name: str = "testlevel") -> Path:
        return write_files(tmp_path / "levels" / name, files)

    return _make


@pytest.fixture
def sample_level(make_level) -> Path:
    return make_level(SAMPLE_LEVEL)
