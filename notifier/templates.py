"""Reminder message template variables."""

from __future__ import annotations

import re
from datetime import datetime

_WEEKDAYS = {
    "id": ("Senin", "Selasa", "Rabu", "Kamis", "Jumat", "Sabtu", "Minggu"),
    "en": ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"),
}

_MONTHS = {
    "id": (
        "Januari", "Februari", "Maret", "April", "Mei", "Juni",
        "Juli", "Agustus", "September", "Oktober", "November", "Desember",
    ),
    "en": (
        "January", "February", "March", "April", "May", "June",
        "July", "August", "September", "October", "November", "December",
    ),
}

# Indonesian writes times as 08.30.
_TIME_SEPARATOR = {"id": ".", "en": ":"}

_PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def time_variables(now: datetime, locale: str = "id") -> dict[str, str]:
    weekdays = _WEEKDAYS.get(locale, _WEEKDAYS["en"])
    months = _MONTHS.get(locale, _MONTHS["en"])
    sep = _TIME_SEPARATOR.get(locale, ":")
    weekday = weekdays[now.weekday()]
    return {
        "date": f"{now.day:02d} {months[now.month - 1]} {now.year}",
        "time": f"{now.hour:02d}{sep}{now.minute:02d}",
        "weekday": weekday,
        "weekday_id": _WEEKDAYS["id"][now.weekday()],
    }


def fill_message_template(template: str, now: datetime, locale: str = "id") -> str:
    """Replace {{date}}, {{time}} and {{weekday}} in template.

    Unknown placeholders are left untouched.
    """
    values = time_variables(now, locale)
    return _PLACEHOLDER.sub(lambda m: values.get(m.group(1), m.group(0)), template)
