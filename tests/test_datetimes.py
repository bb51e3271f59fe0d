from __future__ import annotations

from datetime import UTC, datetime

import pytest

from blogacl.domain.datetimes import BlogDateTime, DateTimeSettings

PARIS = DateTimeSettings(timezone="Europe/Paris", datetime_format="%Y-%m-%d %H:%M")


def test_create_from_supported_inputs() -> None:
    moment = datetime(2024, 3, 1, 12, 30, tzinfo=UTC)
    unix = int(moment.timestamp())

    assert BlogDateTime.create(moment).unix == unix
    assert BlogDateTime.create(unix).unix == unix
    assert BlogDateTime.create(str(unix)).unix == unix
    assert BlogDateTime.create("2024-03-01T12:30:00+00:00").unix == unix
    assert BlogDateTime.create(datetime(2024, 3, 1, 12, 30)).unix == unix

    existing = BlogDateTime.create(moment)
    assert BlogDateTime.create(existing) is existing


def test_create_without_value_is_now() -> None:
    before = int(datetime.now(UTC).timestamp())
    created = BlogDateTime.create()
    after = int(datetime.now(UTC).timestamp())
    assert before <= created.unix <= after


def test_display_timezone_does_not_change_instant() -> None:
    utc = BlogDateTime.create(datetime(2024, 7, 1, 10, 0, tzinfo=UTC))
    paris = BlogDateTime.create(datetime(2024, 7, 1, 10, 0, tzinfo=UTC), PARIS)

    assert paris.unix == utc.unix
    assert paris == utc
    assert paris.timezone == "Europe/Paris"
    assert utc.timezone == "UTC"
    assert paris.format() == "2024-07-01 12:00"
    assert utc.format("%H:%M") == "10:00"
    assert paris.get("%H") == "12"
    assert str(paris) == str(paris.unix)
    assert paris.sql == paris.unix


def test_setters_return_self_and_clone_is_independent() -> None:
    moment = BlogDateTime.create(datetime(2024, 1, 15, 8, 5, 9, tzinfo=UTC))
    copy = moment.clone

    assert moment.set_date(2023, 12, 31) is moment
    moment.set_time(23, 59)

    assert moment.format("%Y-%m-%d %H:%M:%S") == "2023-12-31 23:59:00"
    assert copy.format("%Y-%m-%d %H:%M:%S") == "2024-01-15 08:05:09"

    moment.set_isodate(2024, 1)
    assert moment.format("%Y-%m-%d") == "2024-01-01"
    moment.set_isodate(2024, 10, 3)
    assert moment.format("%Y-%m-%d") == "2024-03-06"


def test_set_timezone() -> None:
    value = BlogDateTime.create(datetime(2024, 1, 1, 0, 0, tzinfo=UTC))
    unix = value.unix

    value.set_timezone("America/New_York")

    assert value.timezone == "America/New_York"
    assert value.unix == unix
    assert value.format("%Y-%m-%d %H") == "2023-12-31 19"


def test_getdate_parts() -> None:
    value = BlogDateTime.create(datetime(2024, 3, 3, 4, 5, 6, tzinfo=UTC))
    parts = value.getdate()

    assert parts["seconds"] == 6
    assert parts["minutes"] == 5
    assert parts["hours"] == 4
    assert parts["mday"] == 3
    assert parts["wday"] == 0
    assert parts["mon"] == 3
    assert parts["year"] == 2024
    assert parts["yday"] == 62
    assert parts["weekday"] == "Sunday"
    assert parts["month"] == "March"
    assert parts[0] == value.unix
    assert parts["mon0"] == "03"
    assert parts["mday0"] == "03"


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BLOG_TIMEZONE", "Asia/Tokyo")
    monkeypatch.setenv("BLOG_DATETIME_FORMAT", "%H:%M")

    settings = DateTimeSettings.from_env()

    assert settings == DateTimeSettings(timezone="Asia/Tokyo", datetime_format="%H:%M")
    assert BlogDateTime.create(0, settings).format() == "09:00"
