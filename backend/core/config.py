"""Display settings loader.

Reads the read-only settings the chart engine consumes (theme palettes,
animation toggle, numeric display precision) from the environment.
"""

from __future__ import annotations

import os
from typing import Dict, List, Optional

from dotenv import load_dotenv

from .models import DisplaySettings

load_dotenv()

CHART_THEMES: Dict[str, List[str]] = {
    "default": [
        "hsl(var(--chart-1))",
        "hsl(var(--chart-2))",
        "hsl(var(--chart-3))",
        "hsl(var(--chart-4))",
        "hsl(var(--chart-5))",
    ],
    "ocean": [
        "hsl(205, 85%, 55%)",
        "hsl(175, 70%, 45%)",
        "hsl(220, 80%, 70%)",
        "hsl(190, 75%, 60%)",
        "hsl(240, 60%, 65%)",
    ],
    "forest": [
        "hsl(120, 60%, 40%)",
        "hsl(90, 55%, 55%)",
        "hsl(140, 50%, 65%)",
        "hsl(70, 45%, 50%)",
        "hsl(30, 65%, 60%)",
    ],
    "sunset": [
        "hsl(30, 90%, 55%)",
        "hsl(0, 85%, 60%)",
        "hsl(50, 95%, 65%)",
        "hsl(350, 80%, 70%)",
        "hsl(20, 75%, 50%)",
    ],
    "pastel": [
        "hsl(300, 70%, 80%)",
        "hsl(180, 60%, 75%)",
        "hsl(60, 80%, 80%)",
        "hsl(0, 75%, 85%)",
        "hsl(120, 50%, 80%)",
    ],
}


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    value = os.getenv(key)
    if value is None:
        return default
    return value.strip() or default


def _env_bool(key: str, default: bool) -> bool:
    raw = _env(key)
    if raw is None:
        return default
    return raw.lower() in ("1", "true", "yes", "on")


def _env_precision(key: str, default: int) -> int:
    raw = _env(key)
    try:
        value = int(raw) if raw is not None else default
    except ValueError:
        value = default
    return max(0, min(5, value))


def get_display_settings() -> DisplaySettings:
    """Build display settings from INSIGHTFLOW_* environment variables."""
    theme = _env("INSIGHTFLOW_THEME", "default") or "default"
    if theme not in CHART_THEMES:
        theme = "default"
    return DisplaySettings(
        theme=theme,
        chart_themes={name: list(colors) for name, colors in CHART_THEMES.items()},
        animations_enabled=_env_bool("INSIGHTFLOW_ANIMATIONS", True),
        data_precision=_env_precision("INSIGHTFLOW_PRECISION", 2),
    )
