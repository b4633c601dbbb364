import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Optional


def resolve_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def to_iso(value: datetime) -> str:
    return resolve_now(value).isoformat().replace("+00:00", "Z")


def add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    # Jan 31 + 1 month lands on the last day of February.
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def offset_date(now: datetime, amount: int, unit: str) -> datetime:
    normalized = unit.lower().rstrip("s")
    if normalized == "week":
        return now + timedelta(days=amount * 7)
    if normalized == "month":
        return add_months(now, amount)
    return now + timedelta(days=amount)


def parse_iso_date(raw: str) -> Optional[date]:
    try:
        return date.fromisoformat(raw)
    except (TypeError, ValueError):
        return None
