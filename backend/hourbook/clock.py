"""Civil time <-> instant conversion for a named timezone.

Zone rules are never computed here. A *zone oracle* answers "which UTC offset
does zone Z observe at instant I", and everything else is arithmetic on top
of that answer. The default oracle is backed by :mod:`zoneinfo`; tests inject
fakes.

``civil_to_instant`` asks the oracle exactly once, at the civil reading
treated as if it were already UTC, and subtracts that offset. Near a DST
transition (within the zone's offset of it) this can pick the offset of the
wrong side; invoices already issued were computed this way, so the behaviour
is kept as is.
"""

from __future__ import annotations

import datetime as dt
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

logger = logging.getLogger(__name__)

UTC = dt.timezone.utc
AUTO_ZONE = "auto"


@dataclass(frozen=True, slots=True)
class ZoneOffset:
    offset_minutes: int
    valid: bool


@dataclass(frozen=True, slots=True)
class CivilTime:
    year: int
    month: int
    day: int
    hour: int
    minute: int
    second: int = 0
    offset_label: str = "GMT"

    def format_for_edit(self) -> str:
        return f"{self.year:04d}-{self.month:02d}-{self.day:02d} {self.hour:02d}:{self.minute:02d}"


ZoneOracle = Callable[[dt.datetime, str], ZoneOffset]


def zoneinfo_oracle(instant: dt.datetime, zone_name: str) -> ZoneOffset:
    try:
        zone = ZoneInfo(zone_name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneOffset(offset_minutes=0, valid=False)
    offset = instant.astimezone(zone).utcoffset() or dt.timedelta(0)
    return ZoneOffset(offset_minutes=int(offset.total_seconds() // 60), valid=True)


def detect_system_zone() -> Optional[str]:
    """Best-effort IANA name of the host's zone, ``None`` when unknown."""
    env_zone = os.environ.get("TZ", "").strip().lstrip(":")
    if env_zone:
        return env_zone
    try:
        target = Path("/etc/localtime").resolve(strict=True)
    except OSError:
        target = None
    if target is not None and "zoneinfo" in target.parts:
        parts = target.parts
        index = len(parts) - 1 - parts[::-1].index("zoneinfo")
        candidate = "/".join(parts[index + 1 :])
        if candidate:
            return candidate
    try:
        content = Path("/etc/timezone").read_text(encoding="utf-8").strip()
    except OSError:
        content = ""
    return content or None


def format_offset(offset_minutes: int) -> str:
    if offset_minutes == 0:
        return "GMT"
    sign = "-" if offset_minutes < 0 else "+"
    hours, minutes = divmod(abs(offset_minutes), 60)
    if minutes:
        return f"GMT{sign}{hours}:{minutes:02d}"
    return f"GMT{sign}{hours}"


class TimezoneClock:
    """Converts between wall-clock readings and UTC instants in a named zone.

    ``system_zone`` is what ``"auto"`` resolves to. It is looked up once, at
    construction, through ``detect_system_zone`` unless given explicitly.
    ``local_tz`` is the zone used when a name is not recognised; ``None``
    means the interpreter's local time conversion.
    """

    def __init__(
        self,
        oracle: ZoneOracle = zoneinfo_oracle,
        *,
        system_zone: Optional[str] = None,
        local_tz: Optional[dt.tzinfo] = None,
        zone_detector: Callable[[], Optional[str]] = detect_system_zone,
    ) -> None:
        self._oracle = oracle
        self._system_zone = system_zone if system_zone is not None else zone_detector()
        self._local_tz = local_tz

    @property
    def system_zone(self) -> Optional[str]:
        return self._system_zone

    def resolve_zone(self, zone_name: Optional[str]) -> Optional[str]:
        if not zone_name or zone_name.strip().lower() == AUTO_ZONE:
            return self._system_zone
        return zone_name.strip()

    def civil_to_instant(
        self,
        year: int,
        month: int,
        day: int,
        hour: int,
        minute: int,
        zone_name: Optional[str],
    ) -> dt.datetime:
        # Raises ValueError for impossible readings such as Feb 30.
        naive = dt.datetime(year, month, day, hour, minute)
        zone = self.resolve_zone(zone_name)
        if zone is None:
            return self._local_to_instant(naive)

        approximate = naive.replace(tzinfo=UTC)
        offset = self._oracle(approximate, zone)
        if not offset.valid:
            logger.warning("Unknown timezone %r, reading %s as local time", zone, naive.isoformat())
            return self._local_to_instant(naive)
        return approximate - dt.timedelta(minutes=offset.offset_minutes)

    def instant_to_civil(self, instant: dt.datetime, zone_name: Optional[str]) -> CivilTime:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=UTC)
        instant = instant.astimezone(UTC)
        zone = self.resolve_zone(zone_name)
        if zone is None:
            return self._instant_to_local(instant)

        offset = self._oracle(instant, zone)
        if not offset.valid:
            logger.warning("Unknown timezone %r, showing %s in local time", zone, instant.isoformat())
            return self._instant_to_local(instant)
        shifted = instant + dt.timedelta(minutes=offset.offset_minutes)
        return CivilTime(
            year=shifted.year,
            month=shifted.month,
            day=shifted.day,
            hour=shifted.hour,
            minute=shifted.minute,
            second=shifted.second,
            offset_label=format_offset(offset.offset_minutes),
        )

    def format_for_edit(self, instant: dt.datetime, zone_name: Optional[str]) -> str:
        return self.instant_to_civil(instant, zone_name).format_for_edit()

    def _local_to_instant(self, naive: dt.datetime) -> dt.datetime:
        if self._local_tz is not None:
            return naive.replace(tzinfo=self._local_tz).astimezone(UTC)
        # a naive datetime is read as system local time
        return naive.astimezone(UTC)

    def _instant_to_local(self, instant: dt.datetime) -> CivilTime:
        local = instant.astimezone(self._local_tz)
        offset = local.utcoffset() or dt.timedelta(0)
        return CivilTime(
            year=local.year,
            month=local.month,
            day=local.day,
            hour=local.hour,
            minute=local.minute,
            second=local.second,
            offset_label=format_offset(int(offset.total_seconds() // 60)),
        )
