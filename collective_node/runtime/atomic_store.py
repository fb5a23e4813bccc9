from __future__ import annotations

"""
Atomic JSON snapshot persistence for pool state.

- Atomic write (temp file + os.replace) with directory fsync
- Rolling backups (.bak1, .bak2, ...) to survive partial writes/corruption
- Load fallback: primary -> bak1 -> bak2 -> ...
- Journal marker (.journal) present while a save is in flight, so a
  crashed save can be detected on the next start
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

log = logging.getLogger(__name__)

JsonDict = Dict[str, Any]
PathLike = Union[str, Path]


def _fsync_dir(dir_path: Path) -> None:
    # Not every platform allows opening a directory (e.g. Windows).
    try:
        fd = os.open(str(dir_path), os.O_DIRECTORY)
    except (AttributeError, OSError):
        return
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def canonical_json_bytes(obj: JsonDict) -> bytes:
    return json.dumps(obj, ensure_ascii=False, sort_keys=True, separators=(",", ":")).encode("utf-8")


def atomic_write_bytes(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(str(tmp_path), str(path))
        _fsync_dir(path.parent)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def read_json(path: Path) -> Optional[JsonDict]:
    if not path.exists():
        return None
    try:
        obj = json.loads(path.read_bytes().decode("utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        log.warning("unreadable state file %s: %s", path, e)
        return None
    return obj if isinstance(obj, dict) else None


class AtomicLedgerStore:
    """
    Snapshot store for one pool. `save` replaces the whole snapshot;
    `load` returns the newest readable one or None.
    """

    def __init__(
        self,
        data_dir: PathLike = ".",
        *,
        filename: str = "pool_state.json",
        keep_backups: int = 2,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.filename = filename
        self.keep_backups = max(0, int(keep_backups))

    @property
    def path(self) -> Path:
        return self.data_dir / self.filename

    @property
    def journal_path(self) -> Path:
        return self.path.with_suffix(self.path.suffix + ".journal")

    def backup_path(self, n: int) -> Path:
        return self.path.with_suffix(self.path.suffix + f".bak{n}")

    def exists(self) -> bool:
        return self.path.exists()

    def interrupted(self) -> bool:
        """True if the last save did not finish."""
        return self.journal_path.exists()

    def _candidates(self) -> List[Path]:
        return [self.path] + [self.backup_path(i) for i in range(1, self.keep_backups + 1)]

    def load(self) -> Optional[JsonDict]:
        if self.interrupted():
            log.warning("previous save of %s was interrupted; falling back to backups if needed", self.path)
        for p in self._candidates():
            obj = read_json(p)
            if obj is not None:
                if p != self.path:
                    log.warning("loaded pool state from backup %s", p)
                return obj
        return None

    def _rotate_backups(self) -> None:
        if self.keep_backups <= 0:
            return
        for i in range(self.keep_backups, 1, -1):
            src = self.backup_path(i - 1)
            if src.exists():
                os.replace(str(src), str(self.backup_path(i)))
        if self.path.exists():
            os.replace(str(self.path), str(self.backup_path(1)))

    def save(self, state: JsonDict) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        data = canonical_json_bytes(state)

        atomic_write_bytes(self.journal_path, b"1")
        self._rotate_backups()
        atomic_write_bytes(self.path, data)
        self.journal_path.unlink()
