from __future__ import annotations

from pathlib import Path

from levelcleanup.core.pipeline.level_session import find_delete_candidates, read_level
from levelcleanup.core.resolution.missing_log import missing_paths_from_lines, read_missing_files_log
from levelcleanup.runtime.paths import PathResolver
from levelcleanup.utils.diagnostics import DiagnosticLog

MARKERS = ["Missing source texture", "Unable to find shape"]


def _resolver(tmp_path: Path) -> PathResolver:
    root = tmp_path / "levels" / "testlevel"
    index = {
        "art/rock_d.png": "art/rock_d.png",
        "art/shapes/old.dae": "art/shapes/old.dae",
    }
    return PathResolver(root, tmp_path, index, [".dds", ".png"])


def test_plain_list_and_game_log_lines() -> None:
    lines = [
        "art/a.png",
        "",
        "   ",
        "12.34500|E|TSShape::init| Unable to find shape: '/levels/testlevel/art/b.dae'",
        "12.34600|I|GELua.core| loading level",
        "Missing source texture : art/c.dds",
    ]
    assert missing_paths_from_lines(lines, MARKERS) == [
        "art/a.png",
        "/levels/testlevel/art/b.dae",
        "art/c.dds",
    ]


def test_markers_are_case_insensitive() -> None:
    assert missing_paths_from_lines(["MISSING SOURCE TEXTURE: x.dds"], MARKERS) == ["x.dds"]


def test_log_values_resolve_to_level_keys(tmp_path: Path) -> None:
    log_file = tmp_path / "beamng.log"
    log_file.write_text(
        "\n".join([
            "1.00000|W|Material| Missing source texture: art/rock_d.dds",
            "/levels/testlevel/ART/Shapes/OLD.dae",
            "/levels/testlevel/art/not_there.png",
            "C:/somewhere/else.png",
        ]),
        encoding="utf-8",
    )
    log = DiagnosticLog()
    keys = read_missing_files_log(log_file, _resolver(tmp_path), MARKERS, log)

    # a missing file that does not exist on disk is still remembered by its key
    assert keys == {"art/rock_d.png", "art/shapes/old.dae", "art/not_there.png"}
    assert any("Missing-files log beamng.log: 3 entries" == d.message for d in log.entries)


def test_unreadable_log_is_an_error_not_a_crash(tmp_path: Path) -> None:
    log = DiagnosticLog()
    keys = read_missing_files_log(tmp_path / "nope.log", _resolver(tmp_path), MARKERS, log)
    assert keys == set()
    assert len(log.errors) == 1


def test_absolute_paths_into_the_level_are_matched(tmp_path: Path) -> None:
    resolver = _resolver(tmp_path)
    log_file = tmp_path / "missing.txt"
    log_file.write_text(
        "\n".join([
            str(resolver.level_root / "art" / "shapes" / "old.dae"),
            "C:\\Games\\mods\\levels\\TestLevel\\art\\rock_d.dds",
            "/home/other/levels/anotherlevel/art/x.png",
        ]),
        encoding="utf-8",
    )
    keys = read_missing_files_log(log_file, resolver, MARKERS, DiagnosticLog())
    assert "art/shapes/old.dae" in keys
    assert "art/rock_d.png" in keys
    assert not any("x.png" in k for k in keys)


def test_absolute_missing_path_is_not_preselected(make_level, config: dict, tmp_path: Path) -> None:
    root = make_level({
        "info.json": "{}",
        "art/materials.json": '{"m": {"name": "m", "Stages": [{"colorMap": "a.png"}]}}',
        "art/a.png": b"a",
        "art/b.png": b"b",
    })
    missing = tmp_path / "missing.txt"
    missing.write_text(str(root / "art" / "b.png") + "\n", encoding="utf-8")

    log = DiagnosticLog()
    reading = read_level(root, config, log)
    candidates = find_delete_candidates(reading, missing, config, log)

    assert [(c.rel_path, c.preselected) for c in candidates] == [("art/b.png", False)]
