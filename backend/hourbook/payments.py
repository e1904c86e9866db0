"""Stripe client for customers and draft invoices."""

from __future__ import annotations

import datetime as dt
import logging
import time
from dataclasses import dataclass
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import requests

from .billing import InvoiceLineItem

logger = logging.getLogger(__name__)

STRIPE_API_BASE = "https://api.stripe.com/v1"
STRIPE_DASHBOARD_URL = "https://dashboard.stripe.com/invoices"
DEFAULT_PAGE_SIZE = 25


class PaymentError(RuntimeError):
    """The payment processor rejected a request or could not be reached."""

    def __init__(self, message: str, *, response: Optional[requests.Response] = None) -> None:
        super().__init__(message)
        self.response = response


@dataclass(frozen=True, slots=True)
class RemoteInvoice:
    id: str
    number: Optional[str]
    customer_name: Optional[str]
    customer_email: Optional[str]
    status: str
    amount: float
    currency: str
    created: dt.datetime
    due_date: Optional[dt.datetime]
    hosted_url: Optional[str]
    dashboard_url: str


@dataclass(frozen=True, slots=True)
class RemoteInvoicePage:
    items: Tuple[RemoteInvoice, ...]
    has_more: bool
    next_cursor: Optional[str]


class InvoiceListCache:
    """Short-lived cache of invoice list pages, keyed by account and cursor."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._lock = RLock()
        self._pages: Dict[str, Tuple[float, RemoteInvoicePage]] = {}

    @staticmethod
    def key(api_key: str, cursor: Optional[str]) -> str:
        return f"{api_key[-8:]}:{cursor or 'first'}"

    def get(self, key: str) -> Optional[RemoteInvoicePage]:
        with self._lock:
            cached = self._pages.get(key)
            if cached is None:
                return None
            stored_at, page = cached
            if self._clock() - stored_at >= self.ttl_seconds:
                del self._pages[key]
                return None
            return page

    def put(self, key: str, page: RemoteInvoicePage) -> None:
        with self._lock:
            self._pages[key] = (self._clock(), page)

    def clear(self) -> None:
        with self._lock:
            self._pages.clear()


def _from_timestamp(value: Optional[int]) -> Optional[dt.datetime]:
    if value is None:
        return None
    return dt.datetime.fromtimestamp(value, tz=dt.timezone.utc)


def _format_moment(value: dt.datetime) -> str:
    local = value.astimezone()
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{local:%b} {local.day}, {hour}:{local.minute:02d} {suffix}"


class StripeClient:
    """Talks to the Stripe REST API with form-encoded requests.

    Line item amounts must already be integer minor units; this client never
    rounds. Creating an invoice clears ``cache`` so the next listing shows it.
    """

    def __init__(
        self,
        api_key: str,
        *,
        cache: InvoiceListCache,
        base_url: str = STRIPE_API_BASE,
        currency: str = "usd",
        days_until_due: int = 30,
        timeout: int = 30,
        http: Optional[Any] = None,
    ) -> None:
        self.api_key = api_key
        self.cache = cache
        self.base_url = base_url.rstrip("/")
        self.currency = currency
        self.days_until_due = days_until_due
        self.timeout = timeout
        self.http = http or requests.Session()

    def _request(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        url = f"{self.base_url}/{path.lstrip('/')}"
        kwargs.setdefault("timeout", self.timeout)
        headers = kwargs.setdefault("headers", {})
        headers["Authorization"] = f"Bearer {self.api_key}"
        try:
            response = self.http.request(method, url, **kwargs)
        except requests.RequestException as exc:
            raise PaymentError(f"Stripe request failed: {exc}") from exc

        if response.status_code >= 400:
            message = response.text
            try:
                message = response.json()["error"]["message"]
            except (ValueError, KeyError, TypeError):
                pass
            raise PaymentError(f"Stripe error {response.status_code}: {message}", response=response)
        return response.json()

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------
    def ensure_customer(self, name: str, email: str, existing_ref: Optional[str] = None) -> str:
        if existing_ref:
            try:
                found = self._request("GET", f"/customers/{existing_ref}")
            except PaymentError as exc:
                if exc.response is None or exc.response.status_code != 404:
                    raise
                logger.info("Stripe customer %s no longer exists, looking up by email", existing_ref)
            else:
                if not found.get("deleted"):
                    return existing_ref

        existing = self._request("GET", "/customers", params={"email": email, "limit": 1})
        data = existing.get("data") or []
        if data:
            return data[0]["id"]

        created = self._request("POST", "/customers", data={"name": name, "email": email})
        logger.info("Created Stripe customer %s for %s", created["id"], email)
        return created["id"]

    # ------------------------------------------------------------------
    # Invoices
    # ------------------------------------------------------------------
    def create_draft_invoice(
        self,
        customer_ref: str,
        project_name: str,
        line_items: Sequence[InvoiceLineItem],
    ) -> str:
        """Post each item as a pending invoice item, then sweep them into a draft.

        If any request fails, the items created so far are deleted again so
        that a retry starts from a clean customer.
        """
        created: List[str] = []
        try:
            for item in line_items:
                if item.amount_minor_units <= 0:
                    continue
                hours = f"{item.hours:.2f}"
                posted = self._request(
                    "POST",
                    "/invoiceitems",
                    data={
                        "customer": customer_ref,
                        "amount": item.amount_minor_units,
                        "currency": self.currency,
                        "description": item.description,
                        "metadata[project]": project_name,
                        "metadata[start_time]": item.period_start.isoformat(),
                        "metadata[end_time]": item.period_end.isoformat(),
                        "metadata[time_range]": f"{_format_moment(item.period_start)} - {_format_moment(item.period_end)}",
                        "metadata[hours]": hours,
                    },
                )
                created.append(posted["id"])

            invoice = self._request(
                "POST",
                "/invoices",
                data={
                    "customer": customer_ref,
                    "auto_advance": "false",
                    "collection_method": "send_invoice",
                    "days_until_due": self.days_until_due,
                    "pending_invoice_items_behavior": "include",
                },
            )
        except PaymentError:
            self._discard_invoice_items(created)
            raise
        self.cache.clear()
        logger.info("Created Stripe draft invoice %s with %d line items", invoice["id"], len(line_items))
        return invoice["id"]

    def _discard_invoice_items(self, item_ids: Sequence[str]) -> None:
        for item_id in item_ids:
            try:
                self._request("DELETE", f"/invoiceitems/{item_id}")
            except PaymentError as exc:
                logger.error("Could not delete pending Stripe invoice item %s: %s", item_id, exc)
            else:
                logger.info("Deleted pending Stripe invoice item %s after a failed invoice", item_id)

    def list_invoices(
        self,
        cursor: Optional[str] = None,
        *,
        limit: int = DEFAULT_PAGE_SIZE,
        force_refresh: bool = False,
    ) -> RemoteInvoicePage:
        cache_key = InvoiceListCache.key(self.api_key, cursor)
        if not force_refresh:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Invoice list served from cache (%s)", cache_key)
                return cached

        params: Dict[str, Any] = {"limit": limit, "expand[]": "data.customer"}
        if cursor:
            params["starting_after"] = cursor
        payload = self._request("GET", "/invoices", params=params)

        items: List[RemoteInvoice] = []
        for raw in payload.get("data") or []:
            customer = raw.get("customer")
            if not isinstance(customer, dict):
                customer = {}
            items.append(
                RemoteInvoice(
                    id=raw["id"],
                    number=raw.get("number"),
                    customer_name=customer.get("name"),
                    customer_email=customer.get("email"),
                    status=raw.get("status") or "unknown",
                    amount=(raw.get("amount_due") or 0) / 100,
                    currency=raw.get("currency") or self.currency,
                    created=_from_timestamp(raw.get("created")) or dt.datetime.now(dt.timezone.utc),
                    due_date=_from_timestamp(raw.get("due_date")),
                    hosted_url=raw.get("hosted_invoice_url"),
                    dashboard_url=f"{STRIPE_DASHBOARD_URL}/{raw['id']}",
                )
            )

        page = RemoteInvoicePage(
            items=tuple(items),
            has_more=bool(payload.get("has_more")),
            next_cursor=items[-1].id if items else None,
        )
        self.cache.put(cache_key, page)
        return page
