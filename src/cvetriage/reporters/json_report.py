"""JSON artifact writer and reader."""

from __future__ import annotations

import json
import os
import stat
import tempfile
from pathlib import Path

from pydantic import TypeAdapter

from cvetriage.models import CveRecord

_RECORD_LIST = TypeAdapter(list[CveRecord])


def render_json(records: list[CveRecord]) -> str:
    """Render records as the dashboard's JSON array."""
    data = [r.model_dump(mode="json", by_alias=True) for r in records]
    return json.dumps(data, indent=2, ensure_ascii=False)


def write_artifact(path: Path, records: list[CveRecord]) -> Path:
    """Atomically replace ``path`` with the rendered records.

    The data goes to a temporary file in the same directory first, so readers
    see either the previous artifact or the complete new one.
    """
    text = render_json(records)
    path.parent.mkdir(parents=True, exist_ok=True)
    mode = _artifact_mode(path)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.write("\n")
            handle.flush()
            os.fsync(handle.fileno())
        # mkstemp always creates 0600
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path


def _artifact_mode(path: Path) -> int:
    """Keep an existing artifact's mode, else honour the umask like a plain write."""
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        pass
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


def load_artifact(path: Path) -> list[CveRecord]:
    """Parse and validate a previously written artifact."""
    return _RECORD_LIST.validate_json(path.read_bytes())
