import codecs
from pathlib import Path
from typing import Tuple

def load_text(path: str) -> Tuple[str, str]:
    """Read a whole document. Returns (text, encoding); the encoding round-trips on write."""
    data = Path(path).read_bytes()

    if data.startswith(codecs.BOM_UTF8):
        return data.decode("utf-8-sig"), "utf-8-sig"
    # try utf-8 first then latin1 fallback
    for enc in ("utf-8", "latin-1"):
        try:
            return data.decode(enc), enc
        except UnicodeDecodeError:
            continue
    return data.decode("utf-8", errors="replace"), "utf-8"

def write_text(path: str, text: str, encoding: str) -> None:
    """Replace a file atomically; the original stays untouched if anything fails."""
    p = Path(path)
    tmp = p.with_name(p.name + ".tmp")
    try:
        tmp.write_bytes(text.encode(encoding))
        tmp.replace(p)
    except BaseException:
        tmp.unlink(missing_ok=True)
        raise
