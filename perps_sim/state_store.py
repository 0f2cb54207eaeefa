"""
State Store

Disk persistence for the demo account:
- Balance, open positions and position id counter
- UI selections (market, direction, risk mode, advanced settings)
- Reset (clear cached state)

State is a single JSON file, data/perps_state.json by default.
"""

import json
from pathlib import Path
from typing import Any, Dict, Optional

from .config import config
from .monitoring import get_logger

logger = get_logger("state")


class StateStore:
    """Load/save/clear the engine state file."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or config.state_file)

    @property
    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[Dict[str, Any]]:
        """Load saved state, or None when there is none or it is unreadable."""
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r") as f:
                state = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load cached state from {self.path}: {e}")
            return None

        if not isinstance(state, dict):
            logger.warning(f"Ignoring cached state in {self.path}: not an object")
            return None

        logger.info(f"Loaded trading state from {self.path}")
        return state

    def save(self, state: Dict[str, Any]) -> bool:
        """Save state to disk."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w") as f:
                json.dump(state, f, indent=2, default=str)
            tmp_path.replace(self.path)
            return True
        except OSError as e:
            logger.warning(f"Failed to save state to {self.path}: {e}")
            return False

    def clear(self) -> bool:
        """Delete the saved state so the next start uses defaults."""
        try:
            if self.path.exists():
                self.path.unlink()
            logger.info("Cached state cleared")
            return True
        except OSError as e:
            logger.error(f"Failed to clear cached state: {e}")
            return False
