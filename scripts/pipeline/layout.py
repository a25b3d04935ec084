"""Path helpers for the on-disk pack layout."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable


@dataclass(frozen=True)
class PackLayout:
    """Computed paths for a `dread.lens` pack on disk."""

    root: Path
    callsites_dir: Path
    facts_dir: Path
    views_dir: Path

    @classmethod
    def from_root(cls, pack_root: str | Path) -> "PackLayout":
        root = Path(pack_root)
        return cls(
            root=root,
            callsites_dir=root / "callsites",
            facts_dir=root / "facts",
            views_dir=root / "views",
        )

    @property
    def manifest_path(self) -> Path:
        return self.root / "manifest.json"

    @property
    def error_path(self) -> Path:
        return self.root / "export_error.txt"

    def iter_dirs(self) -> Iterable[Path]:
        return (
            self.root,
            self.callsites_dir,
            self.facts_dir,
            self.views_dir,
            self.views_dir / "queries",
        )
