from __future__ import annotations

from datetime import datetime
from typing import Optional

from .config import Config


def log_event(cfg: Optional[Config], message: str) -> None:
    """Lightweight logger writing to the state dir app.log without failing the caller."""
    if cfg is None:
        return
    try:
        cfg.resolve_paths()
        log_path = cfg.log_path
        assert log_path is not None
        log_path.parent.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().isoformat(timespec="seconds")
        with log_path.open("a", encoding="utf-8") as fh:
            fh.write(f"[{timestamp}] {message}\n")
    except OSError:
        pass
