"""
Explicit session and theme contexts.

Components receive these at construction instead of reading ambient
globals. The session context lives from application start until sign-out;
the theme context persists its choice to a local preference file.
"""

import json
from pathlib import Path
from typing import Callable, List, Optional

import structlog

from chat_sync.config import settings
from chat_sync.core.exceptions import UnauthorizedError
from chat_sync.core.logging_config import get_logger
from chat_sync.models.conversation import PeerInfo
from chat_sync.models.user import Identity

logger = get_logger(__name__)

THEMES = ("light", "dark")


class SessionContext:
    """Holds the signed-in identity for the lifetime of one session."""

    def __init__(self):
        self._identity: Optional[Identity] = None
        self._on_end: List[Callable[[Identity], None]] = []

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    @property
    def is_authenticated(self) -> bool:
        return self._identity is not None

    @property
    def user_id(self) -> Optional[str]:
        return self._identity.id if self._identity else None

    def require(self) -> Identity:
        if self._identity is None:
            raise UnauthorizedError("No signed-in user")
        return self._identity

    def as_peer(self) -> PeerInfo:
        """The signed-in user as it appears in someone else's index."""
        identity = self.require()
        return PeerInfo(
            id=identity.id,
            display_name=identity.display_name,
            photo_url=identity.photo_url,
        )

    def begin(self, identity: Identity) -> None:
        if self._identity is not None and self._identity.id != identity.id:
            self.end()
        self._identity = identity
        structlog.contextvars.bind_contextvars(user_id=identity.id)
        logger.info("session_started", user_id=identity.id)

    def end(self) -> None:
        identity = self._identity
        if identity is None:
            return
        self._identity = None
        for callback in list(self._on_end):
            callback(identity)
        structlog.contextvars.unbind_contextvars("user_id")
        logger.info("session_ended", user_id=identity.id)

    def on_end(self, callback: Callable[[Identity], None]) -> None:
        self._on_end.append(callback)


class ThemeContext:
    """Light/dark preference persisted to a JSON file."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or settings.SETTINGS_PATH).expanduser()
        self._theme = self._load()

    @property
    def theme(self) -> str:
        return self._theme

    def set_theme(self, theme: str) -> None:
        if theme not in THEMES:
            raise ValueError(f"Unknown theme: {theme}")
        self._theme = theme
        self._save()

    def toggle(self) -> str:
        self.set_theme("dark" if self._theme == "light" else "light")
        return self._theme

    def _load(self) -> str:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return "light"
        except (OSError, ValueError) as e:
            logger.warning("preferences_unreadable", path=str(self.path), error=str(e))
            return "light"
        theme = data.get("theme") if isinstance(data, dict) else None
        return theme if theme in THEMES else "light"

    def _save(self) -> None:
        try:
            data = {}
            if self.path.exists():
                try:
                    loaded = json.loads(self.path.read_text(encoding="utf-8"))
                    if isinstance(loaded, dict):
                        data = loaded
                except ValueError as e:
                    logger.warning("preferences_overwritten", path=str(self.path), error=str(e))
            data["theme"] = self._theme
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        except OSError as e:
            logger.error("preferences_write_failed", path=str(self.path), error=str(e))
