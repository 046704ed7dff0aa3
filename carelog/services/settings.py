"""Autosave preferences stored in QSettings."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Final, cast

from PySide6.QtCore import QSettings

#: QSettings group holding the autosave preferences.
SETTINGS_GROUP: Final[str] = "autosave"


@dataclass(frozen=True)
class AutosaveSettings:
    """Tunable timings of the autosave engine."""

    #: Quiet interval before a key's edits are flushed, in milliseconds.
    debounce_ms: int = 500
    #: How long ``saved`` is shown before returning to ``idle``; 0 keeps it.
    saved_display_ms: int = 3000
    #: Delay before the first retry of a failed resync fetch; doubles after
    #: each further failure.
    resync_retry_ms: int = 2000
    #: Resync fetches attempted before giving up.
    resync_max_attempts: int = 3

    @classmethod
    def load(cls, settings: QSettings | None = None) -> AutosaveSettings:
        """
        Read the autosave preferences, falling back to the defaults.

        Args:
            settings: Settings to read from; defaults to the application's

        Returns:
            The preferences

        """
        if settings is None:
            settings = QSettings()
        defaults = cls()
        values = {
            name: cast(
                "int",
                settings.value(f"{SETTINGS_GROUP}/{name}", default, type=int),
            )
            for name, default in asdict(defaults).items()
        }
        return cls(**values)

    def save(self, settings: QSettings | None = None) -> None:
        """
        Write the autosave preferences.

        Args:
            settings: Settings to write to; defaults to the application's

        """
        if settings is None:
            settings = QSettings()
        for name, value in asdict(self).items():
            settings.setValue(f"{SETTINGS_GROUP}/{name}", value)
        settings.sync()
