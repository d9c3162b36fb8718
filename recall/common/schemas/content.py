"""
Embedded Content Text

Renders a reminder to the natural-language string that is embedded and
stored alongside its vector, e.g.

    Buy groceries on Tuesday, February 18, 2026 (2026-02-18) at 7pm [Work]

The ISO date is kept in the text so that keyword search over embedded
content can match a resolved date string directly.
"""

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .reminder import Reminder


def _format_time(value: str) -> Optional[str]:
    """'19:00' -> '7pm', '09:30' -> '9:30am'"""
    parts = value.split(":")
    try:
        hour = int(parts[0])
        minute = int(parts[1]) if len(parts) > 1 else 0
    except ValueError:
        return None

    suffix = "pm" if hour >= 12 else "am"
    hour = hour % 12 or 12
    mins = f":{minute:02d}" if minute > 0 else ""
    return f"{hour}{mins}{suffix}"


def build_content_string(reminder: "Reminder", tag_name: Optional[str] = None) -> str:
    """Build the embedded-content string for a reminder"""
    content = reminder.title

    if reminder.date:
        natural = reminder.date.strftime("%A, %B ") + f"{reminder.date.day}, {reminder.date.year}"
        content += f" on {natural} ({reminder.date.isoformat()})"

    if reminder.time:
        formatted = _format_time(reminder.time)
        if formatted:
            content += f" at {formatted}"

    if tag_name:
        content += f" [{tag_name}]"

    return content


def title_from_content(content: str) -> str:
    """Rough title recovery from an embedded-content string"""
    head = content.split("[")[0]
    for marker in (" on ", " at "):
        idx = head.find(marker)
        if idx > 0:
            head = head[:idx]
    return head.strip()
