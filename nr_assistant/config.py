"""Configuration for the assistant plugin."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Any, Mapping

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass(frozen=True)
class AssistantSettings:
    """Immutable settings, loaded from environment variables or host settings.

    request_timeout is in milliseconds, matching what the editor expects.
    """

    enabled: bool = False
    url: str = ""
    token: str = field(default="", repr=False)
    request_timeout: int = 60000
    mcp_enabled: bool = True
    completions_enabled: bool = True
    model_url: str | None = None
    vocabulary_url: str | None = None
    log_level: str = "WARNING"

    @classmethod
    def from_env(cls) -> AssistantSettings:
        return cls(
            enabled=_env_bool("NR_ASSISTANT_ENABLED", False),
            url=os.getenv("NR_ASSISTANT_URL", "").rstrip("/"),
            token=os.getenv("NR_ASSISTANT_TOKEN", ""),
            request_timeout=int(os.getenv("NR_ASSISTANT_TIMEOUT", "60000")),
            mcp_enabled=_env_bool("NR_ASSISTANT_MCP_ENABLED", True),
            completions_enabled=_env_bool("NR_ASSISTANT_COMPLETIONS_ENABLED", True),
            model_url=os.getenv("NR_ASSISTANT_MODEL_URL") or None,
            vocabulary_url=os.getenv("NR_ASSISTANT_VOCABULARY_URL") or None,
            log_level=os.getenv("NR_ASSISTANT_LOG_LEVEL", "WARNING").upper(),
        )

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any] | None) -> AssistantSettings:
        """Normalize the host's ``assistant`` settings block.

        Only a literal ``True`` enables the assistant, and a disabled assistant
        never runs completions.  Missing ``mcp`` / ``completions`` blocks
        default to enabled.
        """
        raw = raw or {}
        enabled = raw.get("enabled") is True
        mcp = raw.get("mcp") or {"enabled": True}
        completions = raw.get("completions") if enabled else None
        completions = completions or {"enabled": enabled, "modelUrl": None, "vocabularyUrl": None}
        return cls(
            enabled=enabled,
            url=str(raw.get("url") or "").rstrip("/"),
            token=str(raw.get("token") or ""),
            request_timeout=int(raw.get("requestTimeout") or 60000),
            mcp_enabled=bool(mcp.get("enabled")),
            completions_enabled=bool(completions.get("enabled")),
            model_url=completions.get("modelUrl") or None,
            vocabulary_url=completions.get("vocabularyUrl") or None,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self.enabled and self.url and self.token)

    @property
    def timeout_seconds(self) -> float:
        return self.request_timeout / 1000

    @property
    def headers(self) -> dict[str, str]:
        h: dict[str, str] = {"Accept": "*/*", "Content-Type": "application/json"}
        if self.token:
            h["Authorization"] = f"Bearer {self.token}"
        return h

    @property
    def client_settings(self) -> dict[str, Any]:
        """Settings published to the editor on initialisation."""
        return {
            "enabled": self.enabled and bool(self.url),
            "requestTimeout": self.request_timeout,
        }
