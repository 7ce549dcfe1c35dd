"""
state.py – Run state persisted between sync runs: the cached JWT token and the
manual start row.
"""

import contextlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

import yaml

logger = logging.getLogger(__name__)


@dataclass
class SyncState:
    """Mutable state shared by the API client and the batch controller."""

    token: Optional[str] = None
    token_expires_at: Optional[float] = None  # seconds since epoch
    manual_start_row: Optional[int] = None

    def has_valid_token(self, now: float) -> bool:
        return bool(self.token) and self.token_expires_at is not None and now < self.token_expires_at

    def store_token(self, token: str, expires_at: float) -> None:
        self.token = token
        self.token_expires_at = expires_at

    def clear_token(self) -> None:
        self.token = None
        self.token_expires_at = None

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "token_expires_at": self.token_expires_at,
            "manual_start_row": self.manual_start_row,
        }


def load_state(path: Optional[str]) -> SyncState:
    """Load the state file at *path*; a missing file yields an empty state.

    A state file that cannot be parsed is logged and ignored: the token is
    simply re-acquired and the run falls back to timestamp mode.
    """
    if not path:
        return SyncState()
    file_path = Path(path)
    if not file_path.exists():
        return SyncState()
    try:
        with open(file_path) as fh:
            raw = yaml.safe_load(fh) or {}
    except yaml.YAMLError as exc:
        logger.warning("Ignoring unreadable state file %s: %s", file_path, exc)
        return SyncState()
    if not isinstance(raw, dict):
        logger.warning("Ignoring state file %s: expected a mapping", file_path)
        return SyncState()

    state = SyncState()
    token = raw.get("token")
    expires_at = raw.get("token_expires_at")
    if isinstance(token, str) and isinstance(expires_at, (int, float)):
        state.store_token(token, float(expires_at))
    start_row = raw.get("manual_start_row")
    if start_row is not None:
        try:
            state.manual_start_row = int(start_row)
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid manual_start_row %r in %s", start_row, file_path)
    return state


def save_state(state: SyncState, path: Optional[str]) -> None:
    if not path:
        return
    file_path = Path(path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    with open(file_path, "w") as fh:
        yaml.safe_dump(state.to_dict(), fh, default_flow_style=False)
    logger.debug("Saved sync state to %s", file_path)


@contextlib.contextmanager
def open_state(path: Optional[str]) -> Iterator[SyncState]:
    """Load the state at *path* and save it back when the block exits."""
    state = load_state(path)
    try:
        yield state
    finally:
        save_state(state, path)
