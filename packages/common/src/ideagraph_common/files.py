"""Local file helpers shared by the file-backed stores."""

import os
import tempfile
from pathlib import Path
from urllib.parse import quote


def expand_path(path: str | Path) -> Path:
    """Expand `~` and return an absolute path."""
    return Path(path).expanduser().resolve()


def atomic_write_bytes(path: str | Path, data: bytes) -> None:
    """Write `data` to `path` so readers see either the old or the new file.

    The payload goes to a temp file in the same directory which is then
    `os.replace`d over the target (atomic on POSIX and Windows).
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


def atomic_write_text(path: str | Path, text: str) -> None:
    atomic_write_bytes(path, text.encode("utf-8"))


def safe_filename(key: str) -> str:
    """Encode an arbitrary id into a single path component."""
    encoded = quote(key, safe="-_.")
    if encoded in ("", ".", ".."):
        raise ValueError(f"Cannot derive a file name from {key!r}")
    return encoded
