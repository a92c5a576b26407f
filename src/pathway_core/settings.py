"""Environment-driven settings for the Pathway runtime."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from pydantic import BaseModel, Field

_TRUTHY = {"1", "true", "yes", "on"}


class RuntimeSettings(BaseModel):
    """Process-wide knobs read once at application start."""

    app_id: str = "pathway"
    user_id: str = "user-1"
    session_ttl_seconds: Optional[float] = Field(default=3600.0, gt=0)
    max_sessions: Optional[int] = Field(default=1000, gt=0)
    max_tool_iterations: int = Field(default=6, gt=0)
    agents_file: Optional[Path] = None
    log_level: str = "INFO"
    debug_json: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RuntimeSettings":
        env = os.environ if environ is None else environ
        values: dict = {}

        if env.get("PATHWAY_APP_ID"):
            values["app_id"] = env["PATHWAY_APP_ID"].strip()
        if env.get("PATHWAY_USER_ID"):
            values["user_id"] = env["PATHWAY_USER_ID"].strip()
        if "PATHWAY_SESSION_TTL_SECONDS" in env:
            values["session_ttl_seconds"] = _optional_number(env["PATHWAY_SESSION_TTL_SECONDS"], float)
        if "PATHWAY_MAX_SESSIONS" in env:
            values["max_sessions"] = _optional_number(env["PATHWAY_MAX_SESSIONS"], int)
        if env.get("PATHWAY_MAX_TOOL_ITERATIONS"):
            values["max_tool_iterations"] = int(env["PATHWAY_MAX_TOOL_ITERATIONS"])
        if env.get("PATHWAY_AGENTS_FILE"):
            values["agents_file"] = Path(env["PATHWAY_AGENTS_FILE"])
        if env.get("PATHWAY_LOG_LEVEL"):
            values["log_level"] = env["PATHWAY_LOG_LEVEL"].strip().upper()

        debug_flag = env.get("PATHWAY_DEBUG_JSON") or env.get("DEBUG_AI_JSON") or ""
        values["debug_json"] = debug_flag.strip().lower() in _TRUTHY

        return cls(**values)


def configure_logging(level: str = "INFO") -> None:
    """Install a basic root handler unless the host already configured one."""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _optional_number(raw: str, kind):
    text = raw.strip().lower()
    # Empty, zero or "none" disables the limit.
    if text in {"", "0", "none", "off"}:
        return None
    return kind(text)
