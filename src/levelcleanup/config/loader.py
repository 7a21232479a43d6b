import yaml
from pathlib import Path
from typing import Any, Dict, Optional

def load_yaml(path: Path) -> Dict[str,Any]:
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}

def load_defaults(pkg_root: Path) -> Dict[str,Any]:
    return load_yaml(pkg_root / "config" / "defaults.yml")

def merge_config(base: Dict[str,Any], override: Optional[Dict[str,Any]]) -> Dict[str,Any]:
    out = dict(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = merge_config(out[k], v)
        else:
            out[k] = v
    return out

def load_config(pkg_root: Path, user_config: Optional[Path] = None) -> Dict[str,Any]:
    cfg = load_defaults(pkg_root)
    if user_config:
        cfg = merge_config(cfg, load_yaml(user_config))
    return cfg

def package_root() -> Path:
    return Path(__file__).resolve().parents[1]
