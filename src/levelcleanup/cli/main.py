import argparse
import sys
from datetime import datetime
from pathlib import Path

from ..config.loader import load_config, package_root
from ..core.pipeline.analyze_level import analyze_level
from ..core.pipeline.level_session import (
    delete_candidates,
    find_delete_candidates,
    read_level,
    shift_positions,
)
from ..models.errors import LevelCleanupError
from ..reporting.csv_export import load_selection
from ..runtime.archive import Compression, pack, remove_mod_info, unpack
from ..runtime.paths import compute_default_output_dir
from ..utils.diagnostics import DiagnosticLog
from ..utils.logging import LOG_LEVELS, setup_logger


def _add_common(p: argparse.ArgumentParser) -> None:
    p.add_argument("level", help="Level directory, a folder containing it, or a .zip archive")
    p.add_argument("--config", default=None, help="YAML file merged over the packaged defaults")
    p.add_argument("--log-dir", default=None, help="Where *_Warnings.txt / *_Errors.txt go (default: next to the level)")
    p.add_argument("--log-level", default="INFO", type=str.upper, choices=LOG_LEVELS, help="Console log level")
    p.add_argument("--log-file", default=None, help="Also write the log, down to DEBUG, to this file")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="levelcleanup",
        description="Find and remove unused files in a BeamNG level, shift its objects and pack it for deployment.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    scan = sub.add_parser("scan", help="Read the level and report delete candidates (changes nothing)")
    _add_common(scan)
    scan.add_argument("--missing-log", default=None, help="Game log or list of files the game failed to load")
    scan.add_argument("--output", default=None, help="Output directory (defaults to <parent_of_level>/cleanup_runs)")
    scan.add_argument("--run-name", default=None, help="Run folder name under output root (defaults to timestamp)")
    scan.add_argument("--no-json", action="store_true", help="Do not keep JSON artifacts (CSV and HTML still written)")

    delete = sub.add_parser("delete", help="Delete orphaned files")
    _add_common(delete)
    delete.add_argument("--missing-log", default=None, help="Game log or list of files the game failed to load")
    delete.add_argument(
        "--from-csv",
        default=None,
        help="delete_candidates.csv from a scan; only rows with Selected=Yes are deleted",
    )
    delete.add_argument("--only", nargs="*", default=None, help="Delete only these level-relative paths")
    delete.add_argument("--dry-run", action="store_true", help="List what would be deleted")

    shift = sub.add_parser("shift", help="Move every placed object by a fixed offset")
    _add_common(shift)
    shift.add_argument("--dx", default="0", help="Offset on the x axis")
    shift.add_argument("--dy", default="0", help="Offset on the y axis")
    shift.add_argument("--dz", default="0", help="Offset on the z axis")

    pk = sub.add_parser("pack", help="Zip the level folder for deployment")
    _add_common(pk)
    pk.add_argument(
        "--compression",
        choices=[c.value for c in Compression],
        default=None,
        help="Zip compression (default from config)",
    )
    pk.add_argument("--keep-mod-info", action="store_true", help="Include the mod_info folder in the archive")
    return parser


def _is_archive(arg: str) -> bool:
    p = Path(arg)
    return p.is_file() and p.suffix.lower() == ".zip"


def _level_path(arg: str) -> Path:
    p = Path(arg)
    if _is_archive(arg):
        return unpack(p, f"{p.stem}_unpacked")
    return p


def _run_scan(args, cfg, log_dir, logger) -> int:
    output_root = args.output or compute_default_output_dir(args.level)
    run_name = args.run_name or datetime.now().strftime("run_%Y%m%d_%H%M%S")
    run_dir = Path(output_root) / run_name
    run_dir.mkdir(parents=True, exist_ok=True)
    logger.info("Output: %s", str(run_dir))

    summary = analyze_level(
        level_path=str(_level_path(args.level)),
        output_run_dir=str(run_dir),
        config=cfg,
        missing_log=args.missing_log,
        log_dir=log_dir,
        keep_json=not args.no_json,
    )
    logger.info(
        "%s: %d delete candidates (%d pre-selected, %.2f MB)",
        summary["level_name"],
        summary["candidate_count"],
        summary["preselected_count"],
        summary["candidate_mb"],
    )
    logger.info("Report written: %s", str(run_dir / "report.html"))
    return 0


def _run_delete(args, cfg, log_dir, logger) -> int:
    diag = DiagnosticLog()
    reading = read_level(_level_path(args.level), cfg, diag, log_dir=log_dir)
    candidates = find_delete_candidates(reading, args.missing_log, cfg, diag, log_dir=log_dir)

    if args.from_csv:
        wanted = load_selection(Path(args.from_csv))
        selected = [c for c in candidates if c.rel_path.casefold() in wanted]
    elif args.only is not None:
        wanted = {p.replace("\\", "/").casefold() for p in args.only}
        selected = [c for c in candidates if c.rel_path.casefold() in wanted]
    else:
        selected = [c for c in candidates if c.preselected]

    if args.dry_run:
        for c in selected:
            print(f"{c.size_mb:10.2f} MB  {c.rel_path}")
        print(f"{len(selected)} file(s), {round(sum(c.size_mb for c in selected), 2)} MB")
        return 0

    delete_candidates(reading, selected, cfg, diag, log_dir=log_dir)
    logger.info("Deleted %d of %d selected file(s)", len(selected) - len(diag.with_code("DeletionError")), len(selected))
    return 1 if diag.errors else 0


def _run_shift(args, cfg, log_dir, logger) -> int:
    diag = DiagnosticLog()
    reading = read_level(_level_path(args.level), cfg, diag, log_dir=log_dir)
    result = shift_positions(reading.tree, args.dx, args.dy, args.dz, cfg, diag, log_dir=log_dir)
    logger.info("Changed %d position field(s) in %d file(s)", result.changed, len(result.files))
    return 1 if diag.with_code("RewriteError") else 0


def _run_pack(args, cfg, log_dir, logger) -> int:
    diag = DiagnosticLog()
    reading = read_level(_level_path(args.level), cfg, diag, log_dir=log_dir)
    tree = reading.tree
    source = tree.mount_root
    # only an unpacked working copy is ours to change; a user tree just leaves mod_info out
    if _is_archive(args.level) and not args.keep_mod_info:
        remove_mod_info(source)
    compression = Compression(args.compression or cfg.get("deploy_compression") or Compression.OPTIMAL.value)
    out = pack(source, tree.level_name, compression, include_mod_info=args.keep_mod_info)
    logger.info("Deploy archive: %s", str(out))
    return 0


_COMMANDS = {
    "scan": _run_scan,
    "delete": _run_delete,
    "shift": _run_shift,
    "pack": _run_pack,
}


def main(argv=None):
    args = build_parser().parse_args(argv)

    cfg = load_config(package_root(), Path(args.config) if args.config else None)
    log_dir = Path(args.log_dir) if args.log_dir else None

    logger = setup_logger(Path(args.log_file) if args.log_file else None, level=args.log_level)
    logger.info("Starting %s", args.command)
    logger.info("Level: %s", args.level)

    try:
        return _COMMANDS[args.command](args, cfg, log_dir, logger)
    except LevelCleanupError as e:
        logger.error("%s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
