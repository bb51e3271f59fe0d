from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "UTC"
DEFAULT_DATETIME_FORMAT = "%c"


@dataclass(frozen=True)
class DateTimeSettings:
    timezone: str = DEFAULT_TIMEZONE
    datetime_format: str = DEFAULT_DATETIME_FORMAT

    @classmethod
    def from_env(cls) -> DateTimeSettings:
        return cls(
            timezone=os.getenv("BLOG_TIMEZONE", DEFAULT_TIMEZONE),
            datetime_format=os.getenv("BLOG_DATETIME_FORMAT", DEFAULT_DATETIME_FORMAT),
        )

    def tz(self) -> tzinfo:
        return _zone(self.timezone)


def _zone(name: str | tzinfo) -> tzinfo:
    if isinstance(name, tzinfo):
        return name
    if name.upper() == "UTC":
        return UTC
    return ZoneInfo(name)


class BlogDateTime:
    """Timezone-aware datetime bound to explicit display settings.

    Unix timestamps are always UTC; the settings only decide the zone used
    for display and the default ``format`` pattern.
    """

    def __init__(self, value: datetime, settings: DateTimeSettings | None = None) -> None:
        self.settings = settings if settings is not None else DateTimeSettings()
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        self._value = value.astimezone(self.settings.tz())

    @classmethod
    def create(
        cls,
        value: BlogDateTime | datetime | int | float | str | None = None,
        settings: DateTimeSettings | None = None,
    ) -> BlogDateTime:
        if isinstance(value, BlogDateTime):
            return value
        if value is None:
            moment = datetime.now(UTC)
        elif isinstance(value, datetime):
            moment = value
        elif isinstance(value, (int, float)):
            moment = datetime.fromtimestamp(value, UTC)
        else:
            text = value.strip()
            if text.lstrip("-").isdigit():
                moment = datetime.fromtimestamp(int(text), UTC)
            else:
                moment = datetime.fromisoformat(text)
        return cls(moment, settings)

    @property
    def value(self) -> datetime:
        return self._value

    @property
    def timezone(self) -> str:
        zone = self._value.tzinfo
        if isinstance(zone, ZoneInfo):
            return zone.key
        return self._value.tzname() or DEFAULT_TIMEZONE

    @property
    def unix(self) -> int:
        return int(self._value.timestamp())

    @property
    def sql(self) -> int:
        return self.unix

    @property
    def clone(self) -> BlogDateTime:
        return BlogDateTime(self._value, self.settings)

    def set_timezone(self, timezone: str | tzinfo) -> BlogDateTime:
        self._value = self._value.astimezone(_zone(timezone))
        return self

    def set_date(self, year: int, month: int, day: int) -> BlogDateTime:
        self._value = self._value.replace(year=year, month=month, day=day)
        return self

    def set_isodate(self, year: int, week: int, day: int = 1) -> BlogDateTime:
        target = date.fromisocalendar(year, week, day)
        self._value = self._value.replace(year=target.year, month=target.month, day=target.day)
        return self

    def set_time(self, hour: int, minute: int, second: int = 0) -> BlogDateTime:
        self._value = datetime.combine(
            self._value.date(),
            time(hour, minute, second),
            tzinfo=self._value.tzinfo,
        )
        return self

    def format(self, fmt: str | None = None) -> str:
        return self._value.strftime(fmt if fmt is not None else self.settings.datetime_format)

    def get(self, fmt: str | None = None) -> str:
        return self.format(fmt)

    def getdate(self) -> dict[str | int, Any]:
        value = self._value
        info: dict[str | int, Any] = {
            "seconds": value.second,
            "minutes": value.minute,
            "hours": value.hour,
            "mday": value.day,
            "wday": value.isoweekday() % 7,
            "mon": value.month,
            "year": value.year,
            "yday": value.timetuple().tm_yday - 1,
            "weekday": value.strftime("%A"),
            "month": value.strftime("%B"),
            0: self.unix,
        }
        info["mon0"] = f"{value.month:02d}"
        info["mday0"] = f"{value.day:02d}"
        return info

    def __str__(self) -> str:
        return str(self.unix)

    def __repr__(self) -> str:
        return f"BlogDateTime({self._value.isoformat()!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BlogDateTime):
            return NotImplemented
        return self._value == other._value

    def __hash__(self) -> int:
        return hash(self._value)
