"""Signed, fire-and-forget lifecycle notifications to the proxy-fleet agent.

Each event is POSTed as JSON to ``<url>/webhook`` with an HMAC-SHA256
signature of the exact body bytes in a request header
(``sha256=<hex>``).  Delivery runs on a thread pool after the caller's
transaction has committed; non-2xx answers, timeouts and network errors
are logged and counted, never raised.  The agent reconciles missed
events through its own periodic sync.

Usage::

    notifier = WebhookNotifier(settings.webhook, mode="live")
    notifier.notify(WebhookEvent.CERT_ISSUED, "example.com", cert_id="...")
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import threading
import time
import urllib.error
import urllib.request
from concurrent.futures import Future, ThreadPoolExecutor
from typing import TYPE_CHECKING, Any

from domainssl.core.types import MODE_EVENTS, WebhookEvent

if TYPE_CHECKING:
    from concurrent.futures import Executor

    from domainssl.config.settings import WebhookSettings

log = logging.getLogger(__name__)


def sign(body: bytes, secret: str) -> str:
    """Return ``sha256=<hex hmac>`` for *body*."""
    return "sha256=" + hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def build_payload(
    event: WebhookEvent,
    domain: str,
    cert_id: str | None = None,
    *,
    mode: str = "live",
) -> dict[str, Any]:
    payload: dict[str, Any] = {"event": event.value, "domain": domain}
    if cert_id is not None:
        payload["certId"] = cert_id
    if event in MODE_EVENTS:
        payload["mode"] = mode
    return payload


class WebhookNotifier:
    """Best-effort webhook delivery.

    Parameters
    ----------
    settings:
        The ``webhook`` configuration section.  When its URL or secret is
        empty the notifier is a no-op.
    mode:
        ``"live"`` or ``"sandbox"``; stamped on issued/renewed events.
    executor:
        Optional executor; a private :class:`ThreadPoolExecutor` is
        created otherwise.

    """

    def __init__(
        self,
        settings: WebhookSettings,
        *,
        mode: str = "live",
        executor: Executor | None = None,
    ) -> None:
        self._settings = settings
        self._mode = mode
        self._owns_executor = executor is None
        self._executor = executor
        if executor is None and self.enabled:
            self._executor = ThreadPoolExecutor(
                max_workers=settings.max_workers,
                thread_name_prefix="webhook",
            )
        self._shutdown_event = threading.Event()
        self._dispatch_count = 0
        self._error_count = 0
        self._lock = threading.Lock()

    @property
    def enabled(self) -> bool:
        return bool(self._settings.url and self._settings.secret)

    @property
    def dispatch_count(self) -> int:
        with self._lock:
            return self._dispatch_count

    @property
    def error_count(self) -> int:
        with self._lock:
            return self._error_count

    # -- dispatch ----------------------------------------------------------

    def notify(self, event: WebhookEvent, domain: str, cert_id: str | None = None) -> None:
        """Queue one delivery; returns immediately and never raises."""
        if not self.enabled or self._shutdown_event.is_set() or self._executor is None:
            return
        body = json.dumps(
            build_payload(event, domain, cert_id, mode=self._mode),
            separators=(",", ":"),
        ).encode("utf-8")
        try:
            future: Future = self._executor.submit(self.deliver, event, body)
        except RuntimeError:
            log.warning("Webhook executor shut down, dropping '%s' for %s", event.value, domain)
            return
        future.add_done_callback(
            lambda f, _e=event, _d=domain: self._on_done(f, _e, _d),
        )

    def deliver(self, event: WebhookEvent, body: bytes) -> bool:
        """POST *body* synchronously; ``True`` on a 2xx answer."""
        url = self._settings.url.rstrip("/") + "/webhook"
        req = urllib.request.Request(
            url,
            data=body,
            headers={
                "Content-Type": "application/json",
                self._settings.signature_header: sign(body, self._settings.secret.reveal()),
            },
            method="POST",
        )
        start = time.monotonic()
        try:
            with urllib.request.urlopen(req, timeout=self._settings.timeout_seconds) as resp:  # noqa: S310
                status = resp.status
        except urllib.error.HTTPError as exc:
            detail = _read_body(exc)
            log.warning("Webhook agent returned %d for '%s': %s", exc.code, event.value, detail)
            return False
        except (urllib.error.URLError, OSError) as exc:
            log.warning("Webhook delivery of '%s' failed: %s", event.value, exc)
            return False
        elapsed_ms = (time.monotonic() - start) * 1000
        if not 200 <= status < 300:  # noqa: PLR2004
            log.warning("Webhook agent returned %d for '%s'", status, event.value)
            return False
        log.debug(
            "Webhook '%s' delivered in %.1fms",
            event.value,
            elapsed_ms,
            extra={"event": event.value, "duration_ms": round(elapsed_ms, 2)},
        )
        return True

    def _on_done(self, future: Future, event: WebhookEvent, domain: str) -> None:
        try:
            ok = future.result(timeout=0)
        except Exception:
            ok = False
            log.exception("Webhook delivery of '%s' for %s crashed", event.value, domain)
        with self._lock:
            self._dispatch_count += 1
            if not ok:
                self._error_count += 1

    # -- lifecycle ---------------------------------------------------------

    def shutdown(self, wait: bool = True) -> None:
        """Stop accepting events; only the first call has effect."""
        if self._shutdown_event.is_set():
            return
        self._shutdown_event.set()
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=wait)
            log.info(
                "Webhook executor shut down (dispatched=%d, errors=%d)",
                self.dispatch_count,
                self.error_count,
            )


def _read_body(exc: urllib.error.HTTPError) -> str:
    try:
        return exc.read().decode("utf-8", errors="replace")[:200]
    except OSError:
        return "?"
