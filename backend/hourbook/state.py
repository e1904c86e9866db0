from __future__ import annotations

from threading import RLock
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from .clock import AUTO_ZONE, TimezoneClock
from .config import Settings
from .models import AppSetting
from .payments import InvoiceListCache, StripeClient

SETTING_KEYS = ("timezone", "business_name", "stripe_api_key")


class RuntimeState:
    """User-editable settings plus the process-wide clock and invoice cache."""

    def __init__(self, base_settings: Settings, clock: Optional[TimezoneClock] = None):
        self._lock = RLock()
        self._settings = base_settings
        self.timezone: str = base_settings.timezone or AUTO_ZONE
        self.business_name: str = base_settings.business_name
        self.stripe_api_key: Optional[str] = base_settings.stripe_api_key or None
        self.clock: TimezoneClock = clock or TimezoneClock()
        self.invoice_cache = InvoiceListCache(base_settings.invoice_cache_ttl_seconds)

    @property
    def effective_timezone(self) -> Optional[str]:
        return self.clock.resolve_zone(self.timezone)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "timezone": self.timezone,
                "effective_timezone": self.effective_timezone or "",
                "business_name": self.business_name,
                "stripe_api_key_set": bool(self.stripe_api_key),
            }

    def apply(self, updates: Dict[str, Any]) -> None:
        with self._lock:
            if "timezone" in updates:
                value = (updates.get("timezone") or "").strip()
                self.timezone = value or AUTO_ZONE
            if "business_name" in updates and updates["business_name"] is not None:
                self.business_name = updates["business_name"].strip()
            if "stripe_api_key" in updates:
                key = updates.get("stripe_api_key")
                if key == "__UNCHANGED__":
                    pass
                else:
                    self.stripe_api_key = (key or "").strip() or None
                    self.invoice_cache.clear()

    def load_from_db(self, session: Session) -> None:
        records = session.query(AppSetting).filter(AppSetting.key.in_(SETTING_KEYS)).all()
        if not records:
            return
        self.apply({record.key: record.value for record in records})

    def persist(self, session: Session, updates: Dict[str, Any]) -> None:
        for key, value in updates.items():
            if key not in SETTING_KEYS:
                continue
            if key == "stripe_api_key" and value == "__UNCHANGED__":
                continue
            value = "" if value is None else str(value).strip()
            record = session.query(AppSetting).filter(AppSetting.key == key).one_or_none()
            if record:
                record.value = value
            else:
                session.add(AppSetting(key=key, value=value))
        session.commit()

    def payment_gateway(self) -> Optional[StripeClient]:
        if not self.stripe_api_key:
            return None
        return StripeClient(
            self.stripe_api_key,
            cache=self.invoice_cache,
            base_url=self._settings.stripe_api_base,
            currency=self._settings.currency,
            days_until_due=self._settings.invoice_days_until_due,
        )
