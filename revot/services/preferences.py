"""Local persisted preferences (UI theme)."""
from pathlib import Path
from typing import Any, Dict
import json
import logging
import os
import tempfile

logger = logging.getLogger(__name__)

THEME_KEY = "revot-theme"
THEMES = ("dark", "light")
DEFAULT_THEME = "dark"


class PreferenceStore:
    """Key/value preferences kept in a single JSON file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable preferences at {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _save(self, data: Dict[str, Any]) -> None:
        # Readers never see a half-written file: write beside it, then swap.
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, staged = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(json.dumps(data))
            os.replace(staged, self.path)
        except OSError:
            os.unlink(staged)
            raise

    def get_theme(self) -> str:
        theme = self._load().get(THEME_KEY)
        return theme if theme in THEMES else DEFAULT_THEME

    def set_theme(self, theme: str) -> str:
        if theme not in THEMES:
            raise ValueError(f"Unknown theme '{theme}'")
        data = self._load()
        data[THEME_KEY] = theme
        self._save(data)
        logger.debug(f"Theme set: {theme}")
        return theme

    def toggle_theme(self) -> str:
        return self.set_theme("light" if self.get_theme() == "dark" else "dark")
