from typing import Optional

# Same 11 ids as Google Calendar event colors, so a task's color_id can be
# forwarded to calendar events unchanged.
COLOR_TO_ID = {
    "#a4bdfc": 1,
    "#7ae7bf": 2,
    "#dbadff": 3,
    "#ff887c": 4,
    "#fbd75b": 5,
    "#ffb878": 6,
    "#46d6db": 7,
    "#e1e1e1": 8,
    "#5484ed": 9,
    "#51b749": 10,
    "#dc2127": 11,
}

ID_TO_COLOR = {v: k for k, v in COLOR_TO_ID.items()}

DEFAULT_CALENDAR_COLOR = "#3b82f6"


def color_id_from_hex(color: Optional[str]) -> Optional[int]:
    if not color:
        return None
    return COLOR_TO_ID.get(color.lower())


def hex_from_color_id(color_id) -> Optional[str]:
    try:
        return ID_TO_COLOR.get(int(color_id))
    except (TypeError, ValueError):
        return None
