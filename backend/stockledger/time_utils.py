from __future__ import annotations

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context


VALID_GROUP_BY = ("day", "week", "month")


def utcnow() -> datetime:
    """Server-side 'now' in UTC (naive, canonical)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 datetime string and normalize to UTC-naive datetime.

    - None / "" -> None
    - "YYYY-MM-DDTHH:MM" (naive) is interpreted as UTC
    - "...Z" or "...+/-HH:MM" is converted to UTC and tzinfo is stripped
    """
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    # Accept trailing Z
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"

    dt = datetime.fromisoformat(s)

    # Normalize to UTC-naive
    if dt.tzinfo is None:
        # interpret naive as UTC
        return dt.replace(tzinfo=None)

    return dt.astimezone(timezone.utc).replace(tzinfo=None)


def to_utc_z(dt: Optional[datetime]) -> Optional[str]:
    """
    Serializes datetime to ISO-8601 with trailing 'Z'.
    If dt is naive, it is treated as UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    dt_utc = dt.astimezone(timezone.utc).replace(microsecond=0)
    return dt_utc.isoformat().replace("+00:00", "Z")


def org_timezone() -> ZoneInfo:
    """The organization's fixed timezone (ORG_TIMEZONE), UTC outside an app context."""
    name = "UTC"
    if has_app_context():
        name = current_app.config.get("ORG_TIMEZONE") or "UTC"
    return ZoneInfo(name)


def to_org_local(dt: datetime) -> datetime:
    """Convert a UTC-naive datetime to an aware datetime in the org timezone."""
    return dt.replace(tzinfo=timezone.utc).astimezone(org_timezone())


def org_today() -> date:
    return to_org_local(utcnow()).date()


def local_midnight_utc(day: date) -> datetime:
    """UTC-naive instant of local midnight at the start of `day`."""
    local = datetime.combine(day, time.min, tzinfo=org_timezone())
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def parse_date_range(
    start: Optional[str], end: Optional[str]
) -> tuple[Optional[datetime], Optional[datetime]]:
    """
    Parse an inclusive [start, end] filter into UTC-naive datetimes.

    A bare date ("YYYY-MM-DD") is an org-local calendar day: start snaps to
    local midnight, end extends through the last microsecond of that day.
    Full datetimes go through parse_iso_datetime unchanged.

    Raises ValueError on unparseable input.
    """
    start_dt = _parse_bound(start, end_of_day=False)
    end_dt = _parse_bound(end, end_of_day=True)
    if start_dt and end_dt and start_dt > end_dt:
        raise ValueError("start must be before end")
    return start_dt, end_dt


def _parse_bound(value: Optional[str], *, end_of_day: bool) -> Optional[datetime]:
    if value is None or not str(value).strip():
        return None
    s = str(value).strip()
    if len(s) == 10:
        day = date.fromisoformat(s)
        if end_of_day:
            return local_midnight_utc(day + timedelta(days=1)) - timedelta(microseconds=1)
        return local_midnight_utc(day)
    return parse_iso_datetime(s)


def bucket_key(dt: datetime, group_by: str) -> str:
    """
    Calendar bucket label for a UTC-naive timestamp, in the org timezone.

    day   -> "2026-03-14"
    week  -> "2026-W11"  (ISO week-numbering year and week)
    month -> "2026-03"
    """
    local = to_org_local(dt)
    if group_by == "day":
        return local.strftime("%Y-%m-%d")
    if group_by == "week":
        iso_year, iso_week, _ = local.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if group_by == "month":
        return local.strftime("%Y-%m")
    raise ValueError("group_by must be day, week, or month")


def add_months(day: date, months: int) -> date:
    """First day of the month `months` away from `day`'s month."""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)
