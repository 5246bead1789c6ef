from __future__ import annotations

import logging


def _parse_level(name: str) -> int:
    level = logging.getLevelName(name.upper())
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level_name: str) -> None:
    root = logging.getLogger()
    # Reloaders call this more than once.
    if getattr(root, "_road_monitor_configured", False):
        root.setLevel(_parse_level(level_name))
        return

    handler = logging.StreamHandler()
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
    )
    root.addHandler(handler)
    root.setLevel(_parse_level(level_name))
    root._road_monitor_configured = True  # type: ignore[attr-defined]
    logging.getLogger("httpx").setLevel(logging.WARNING)
