"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables (and a local .env, if present)
- Provide a typed, immutable config object

Non-responsibilities:
- No gating logic
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

from observability import logger


@dataclass(frozen=True)
class LobbyConfig:
    """
    Immutable lobby gate configuration.

    Constructed once at process startup and passed to whoever builds
    LobbyGate instances.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str
    log_level: str

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    enable_json_logs: bool

    # ------------------------------------------------------------------
    # Lobby presence
    # ------------------------------------------------------------------

    # Nickname advertised while waiting; None leaves the room undecorated.
    lobby_display_name: str | None

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env(*, dotenv: bool = True) -> LobbyConfig:
        """
        Load configuration from environment variables.

        Values already present in the environment win over .env entries.
        """
        if dotenv:
            load_dotenv(find_dotenv(usecwd=True))

        return LobbyConfig(
            env=os.environ.get("ENV", "dev"),
            log_level=os.environ.get("LOG_LEVEL", "INFO"),
            enable_json_logs=os.environ.get("ENABLE_JSON_LOGS", "1") == "1",
            lobby_display_name=os.environ.get("LOBBY_DISPLAY_NAME") or None,
        )

    def apply_logging(self) -> None:
        """Push level and on/off switch into the JSONL logger."""
        logger.set_level(self.log_level)
        logger.set_enabled(self.enable_json_logs)
