from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, Tuple

STATE_DIR_ENV_VAR = "LEDGERSYNC_STATE_DIR"


def default_state_dir() -> Path:
    """
    Where config.json, corrections.json and logs/ live: $LEDGERSYNC_STATE_DIR
    when set, else %APPDATA%/LedgerSync, else ~/.ledger_sync.
    Nothing is created here; resolve_paths does that.
    """
    override = os.environ.get(STATE_DIR_ENV_VAR, "").strip()
    if override:
        return Path(override).expanduser()
    appdata = os.environ.get("APPDATA")
    if appdata:
        return Path(appdata) / "LedgerSync"
    return Path.home() / ".ledger_sync"


def ensure_app_dirs(base_dir: Path) -> Path:
    base_dir.mkdir(parents=True, exist_ok=True)
    return base_dir


@dataclass
class Config:
    # Ledger layout
    header_marker: str = "Supplier"
    header_column: int = 4
    header_scan_rows: int = 100
    formula_column: int = 13
    styled_columns: int = 18

    # Date systems: numeric cells above the threshold in these columns are
    # shifted by the offset when a 1904-based ledger is normalized.
    date_columns: Tuple[int, ...] = (1, 10, 17)
    legacy_epoch_offset_days: int = 1462
    legacy_epoch_threshold: float = 30000.0

    # Matching
    price_tolerance: float = 0.05
    quantity_tolerance: float = 0.5
    token_threshold: float = 0.65
    consume_matched_rows: bool = False

    progress_every: int = 10

    move_processed_files: bool = False

    # Directories
    state_dir: Path = field(default_factory=default_state_dir)

    # Paths (resolved during resolve_paths)
    config_path: Path | None = None
    corrections_path: Path | None = None
    log_path: Path | None = None
    default_ledger_path: Path | None = None
    processed_dir: Path | None = None

    _PATH_FIELDS = [
        "state_dir",
        "config_path",
        "corrections_path",
        "log_path",
        "default_ledger_path",
        "processed_dir",
    ]

    def _coerce_path_fields(self) -> None:
        """Ensure every path-like field is a pathlib.Path instance."""
        for name in self._PATH_FIELDS:
            value = getattr(self, name, None)
            if value is None or isinstance(value, Path):
                continue
            if value == "":
                setattr(self, name, None)
            else:
                setattr(self, name, Path(value))

    def resolve_paths(self) -> "Config":
        self._coerce_path_fields()
        state_base = ensure_app_dirs(Path(self.state_dir))
        self.state_dir = state_base

        if self.config_path is None:
            self.config_path = state_base / "config.json"
        if self.corrections_path is None:
            self.corrections_path = state_base / "corrections.json"
        if self.log_path is None:
            self.log_path = state_base / "logs" / "app.log"
        self.date_columns = tuple(int(c) for c in self.date_columns)
        return self

    def to_json_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        # Convert Paths to strings for JSON serialization.
        for key in self._PATH_FIELDS:
            value = data.get(key)
            if value is not None:
                data[key] = str(value)
        data["date_columns"] = list(self.date_columns)
        return data


def load_config(path: Path | None = None) -> Config:
    cfg = Config().resolve_paths()
    cfg_path = path or cfg.config_path
    assert cfg_path is not None

    if cfg_path.exists():
        try:
            data = json.loads(cfg_path.read_text(encoding="utf-8"))
            known = {k: v for k, v in data.items() if k in Config.__dataclass_fields__}
            cfg = Config(**known)
            cfg.resolve_paths()
        except (ValueError, TypeError):
            # If config is corrupt, fall back to defaults but do not overwrite yet.
            cfg = Config().resolve_paths()

    return cfg


def save_config(cfg: Config) -> Path:
    cfg.resolve_paths()
    assert cfg.config_path is not None
    cfg.config_path.write_text(json.dumps(cfg.to_json_dict(), indent=2), encoding="utf-8")
    return cfg.config_path
