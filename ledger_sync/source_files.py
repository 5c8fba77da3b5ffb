from __future__ import annotations

import shutil
from datetime import datetime
from pathlib import Path
from typing import Iterable, List, Optional, Union


def _unique_target(target_dir: Path, source: Path, now: Optional[datetime] = None) -> Path:
    target = target_dir / source.name
    if not target.exists():
        return target
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return target_dir / f"{source.stem}_{stamp}{source.suffix}"


def move_files(paths: Iterable[Union[str, Path]], target_dir: Union[str, Path, None]) -> List[Path]:
    """
    Move processed source documents into target_dir, creating it if needed.
    Missing sources are skipped; an existing name gets a timestamp suffix.
    """
    if target_dir is None or not str(target_dir).strip():
        return []
    dest = Path(target_dir)
    dest.mkdir(parents=True, exist_ok=True)

    moved: List[Path] = []
    for raw in paths:
        source = Path(raw)
        if not source.exists():
            continue
        target = _unique_target(dest, source)
        shutil.move(str(source), str(target))
        moved.append(target)
    return moved
