"""
Cron expression parser for the integrator scheduler.

Accepts standard 5-field expressions (minute hour day month day_of_week) and
6-field expressions with a leading seconds field, e.g. ``0 0 20 * * *`` for
every day at 20:00:00.

- Supported tokens per field: '*', '*/n', 'a', 'a,b,c', 'a-b', 'a-b/n'
- Day-of-month vs day-of-week: if both are restricted (not '*'), a day
  matches when either does, as in traditional cron.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

from integrator.exceptions import CronParseError


@dataclass(frozen=True)
class CronSpec:
    seconds: set[int]
    minutes: set[int]
    hours: set[int]
    dom: set[int]  # 1-31
    months: set[int]  # 1-12
    dow: set[int]  # 0-6 (0=Sunday)
    dom_any: bool
    dow_any: bool
    tz: ZoneInfo
    has_seconds: bool


def next_fire_time_cron(expr: str, *, now: datetime, timezone: str | None = None) -> datetime:
    """
    Compute the first fire time strictly after *now*.

    Args:
        expr: Cron expression with 5 or 6 fields
        now: Reference point; naive values are taken to be in *timezone*
        timezone: Optional timezone name (e.g. "UTC", "America/New_York")

    Raises:
        CronParseError: If the expression is invalid or produces no match
    """
    tz = ZoneInfo(timezone) if timezone else (now.tzinfo or ZoneInfo("UTC"))
    if now.tzinfo is None:
        now = now.replace(tzinfo=tz)
    else:
        now = now.astimezone(tz)

    spec = parse_cron(expr, tz=tz)  # type: ignore[arg-type]
    if spec.has_seconds:
        start = now.replace(microsecond=0) + timedelta(seconds=1)
    else:
        start = now.replace(second=0, microsecond=0) + timedelta(minutes=1)
    return _find_next_match(spec, start)


def parse_cron(expr: str, *, tz: ZoneInfo) -> CronSpec:
    parts = [p for p in expr.strip().split() if p]
    if len(parts) not in (5, 6):
        raise CronParseError(f"cron must have 5 or 6 fields, got {len(parts)}: {expr!r}")

    has_seconds = len(parts) == 6
    if has_seconds:
        seconds = _parse_field(parts[0], min_v=0, max_v=59)
        parts = parts[1:]
    else:
        seconds = {0}

    return CronSpec(
        seconds=seconds,
        minutes=_parse_field(parts[0], min_v=0, max_v=59),
        hours=_parse_field(parts[1], min_v=0, max_v=23),
        dom=_parse_field(parts[2], min_v=1, max_v=31),
        months=_parse_field(parts[3], min_v=1, max_v=12),
        dow=_parse_field(parts[4], min_v=0, max_v=6, allow_7_as_0=True),
        dom_any=parts[2] in ("*", "?"),
        dow_any=parts[4] in ("*", "?"),
        tz=tz,
        has_seconds=has_seconds,
    )


def _find_next_match(spec: CronSpec, cursor: datetime) -> datetime:
    # 370 days covers the leap-year edge while bounding invalid specs
    limit = cursor + timedelta(days=370)
    cur = cursor

    while cur <= limit:
        if cur.month not in spec.months:
            cur = _ceil_month(cur)
            continue
        if not _dom_or_dow_match(spec, cur):
            cur = _ceil_day(cur)
            continue
        if cur.hour not in spec.hours:
            cur = _ceil_hour(cur)
            continue
        if cur.minute not in spec.minutes:
            cur = _ceil_minute(cur)
            continue
        if cur.second not in spec.seconds:
            cur = cur + timedelta(seconds=1)
            continue
        return cur

    raise CronParseError("cron expression produced no next fire time within safety window")


def _dom_or_dow_match(spec: CronSpec, dt: datetime) -> bool:
    dom_match = dt.day in spec.dom
    # Python: Monday=0..Sunday=6; cron: Sunday=0..Saturday=6
    cron_dow = (dt.weekday() + 1) % 7
    dow_match = cron_dow in spec.dow

    if spec.dom_any and spec.dow_any:
        return True
    if spec.dom_any:
        return dow_match
    if spec.dow_any:
        return dom_match
    return dom_match or dow_match


def _ceil_month(dt: datetime) -> datetime:
    return (dt.replace(day=1, hour=0, minute=0, second=0) + timedelta(days=32)).replace(day=1)


def _ceil_day(dt: datetime) -> datetime:
    return (dt + timedelta(days=1)).replace(hour=0, minute=0, second=0)


def _ceil_hour(dt: datetime) -> datetime:
    return (dt + timedelta(hours=1)).replace(minute=0, second=0)


def _ceil_minute(dt: datetime) -> datetime:
    return (dt + timedelta(minutes=1)).replace(second=0)


def _parse_field(
    token: str,
    *,
    min_v: int,
    max_v: int,
    allow_7_as_0: bool = False,
) -> set[int]:
    token = token.strip()
    if token in ("*", "?"):
        return set(range(min_v, max_v + 1))

    values: set[int] = set()
    for part in token.split(","):
        part = part.strip()
        if not part:
            continue
        step = 1
        if "/" in part:
            part, step_s = (s.strip() for s in part.split("/", 1))
            if not step_s.isdigit() or int(step_s) == 0:
                raise CronParseError(f"invalid step in field: {token!r}")
            step = int(step_s)

        if part == "*":
            values.update(range(min_v, max_v + 1, step))
            continue

        if "-" in part:
            a_s, b_s = part.split("-", 1)
            if not (a_s.strip().isdigit() and b_s.strip().isdigit()):
                raise CronParseError(f"invalid range in field: {token!r}")
            a, b = int(a_s), int(b_s)
            if allow_7_as_0 and b == 7:
                # "5-7" means Fri, Sat, Sun
                if a > 7:
                    raise CronParseError(f"range start > end in field: {token!r}")
                values.update(v % 7 for v in range(a, 8, step))
                continue
            if a > b:
                raise CronParseError(f"range start > end in field: {token!r}")
            if a < min_v or b > max_v:
                raise CronParseError(f"range out of bounds in field: {token!r}")
            values.update(range(a, b + 1, step))
            continue

        if not part.isdigit():
            raise CronParseError(f"invalid value in field: {token!r}")
        v = int(part)
        if allow_7_as_0 and v == 7:
            v = 0
        if v < min_v or v > max_v:
            raise CronParseError(f"value out of bounds in field: {token!r}")
        values.add(v)

    if not values:
        raise CronParseError(f"empty field: {token!r}")
    return values
