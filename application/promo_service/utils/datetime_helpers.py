"""
Date and time helpers. Timestamps are stored and compared in UTC.
"""

from datetime import datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo

# Settings
from promo_service.config.settings import PromoConfigs
configs = PromoConfigs()

SHOP_TZ = ZoneInfo(configs.SHOP_TIMEZONE)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Attach UTC to naive values (SQLite drops tzinfo) and convert aware ones."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def shop_weekday(dt: datetime) -> int:
    """Weekday in the shop's timezone, 0 = Sunday ... 6 = Saturday."""
    return as_utc(dt).astimezone(SHOP_TZ).isoweekday() % 7


def shop_today(now: Optional[datetime] = None):
    return as_utc(now or utc_now()).astimezone(SHOP_TZ).date()


def format_date(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return as_utc(dt).astimezone(SHOP_TZ).strftime("%d/%m/%Y")


def format_datetime(dt: Optional[datetime]) -> Optional[str]:
    if dt is None:
        return None
    return as_utc(dt).astimezone(SHOP_TZ).strftime("%d/%m/%Y %H:%M")


def days_left(end: datetime, now: Optional[datetime] = None) -> int:
    remaining = as_utc(end) - as_utc(now or utc_now())
    return max(0, remaining.days)
