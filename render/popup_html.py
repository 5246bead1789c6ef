from __future__ import annotations

import html
from datetime import datetime

from normalize.models import Incident


_DESCRIPTION_MAX = 500


def escape_and_truncate(text: str | None, max_length: int = _DESCRIPTION_MAX) -> str:
    """Escape feed text for HTML, cutting the raw text so no entity is split."""
    if not text:
        return ""
    escaped = html.escape(text, quote=True)
    if len(escaped) <= max_length:
        return escaped
    target = max_length - 3
    low, high, best = 0, len(text), 0
    while low <= high:
        mid = (low + high) // 2
        if len(html.escape(text[:mid], quote=True)) <= target:
            best = mid
            low = mid + 1
        else:
            high = mid - 1
    return html.escape(text[:best], quote=True) + "..."


def _format_time(ts: datetime) -> str:
    return ts.strftime("%b %d, %H:%M UTC")


def build_popup_html(incident: Incident) -> str:
    parts = [
        f'<div class="incident-popup" data-type="{incident.type.value.lower()}">',
        f'<span class="incident-badge">{incident.type.value}</span>',
        f"<h3>{html.escape(incident.title)}</h3>",
    ]
    if incident.road_name:
        parts.append(f'<div class="incident-road">{html.escape(incident.road_name)}</div>')
    if incident.description:
        parts.append(f"<p>{escape_and_truncate(incident.description)}</p>")
    for key, value in incident.details:
        label = key.replace("_", " ")
        parts.append(
            f'<div class="incident-detail">{html.escape(label)}: {html.escape(value)}</div>'
        )

    footer = [
        f'<span class="incident-source">{html.escape(incident.source)}</span>',
        f'<span class="incident-status">{incident.status.value}</span>',
    ]
    if incident.time_window.start is not None:
        footer.append(
            f'<span class="incident-time">{_format_time(incident.time_window.start)}</span>'
        )
    parts.append(f'<div class="incident-footer">{"".join(footer)}</div>')
    parts.append("</div>")
    return "".join(parts)
