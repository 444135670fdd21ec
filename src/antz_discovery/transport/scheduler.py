"""Outbound request-data-page commands with bounded retries and de-duplication.

A request is an 8-byte common page 70 sent as acknowledged data::

    [0x46, 0xFF, 0xFF, 0xFF, 0xFF, transmit count, requested page, command type]

Command type 0x01 asks for a single page, 0x04 for a page set (identification
page 0x10 is answered with 0x10 and 0x11).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from antz_discovery.devices.identity import DeviceIdentity
from antz_discovery.exceptions import PageRequestError
from antz_discovery.logging_abstraction import get_logger
from antz_discovery.metrics import registry as metrics
from antz_discovery.protocol.constants import (
    IDENTIFICATION_PAGES,
    PAGE_IDENTIFICATION_1,
    PAGE_MANUFACTURER_IDENT,
    PAGE_PRODUCT_INFO,
    PAGE_REQUEST,
    REQUEST_COMMAND_PAGE_SET,
    REQUEST_COMMAND_SINGLE_PAGE,
    REQUEST_RESERVED,
    REQUEST_TRANSMIT_ONCE,
    SUPPLEMENTARY_PAGES,
)
from antz_discovery.protocol.messages import to_hex
from antz_discovery.transport.base import Transport
from antz_discovery.transport.retry_policy import RetryPolicy

logger = get_logger(__name__)


def build_request_command(page: int, command: int = REQUEST_COMMAND_SINGLE_PAGE) -> bytes:
    """Build the 8-byte request-data-page payload.

    Example:
        >>> build_request_command(0x52).hex(" ")
        '46 ff ff ff ff 01 52 01'

    """
    return bytes(
        (
            PAGE_REQUEST,
            REQUEST_RESERVED,
            REQUEST_RESERVED,
            REQUEST_RESERVED,  # descriptor byte 1
            REQUEST_RESERVED,  # descriptor byte 2
            REQUEST_TRANSMIT_ONCE,
            page,
            command,
        ),
    )


class RequestDedupeCache:
    """``(identity, page)`` keys that were already requested.

    Entries never expire on their own; they are removed only through
    ``clear_for``.
    """

    def __init__(self) -> None:
        self._keys: set[tuple[DeviceIdentity, int]] = set()

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: object) -> bool:
        return key in self._keys

    def should_request_page_again(self, identity: DeviceIdentity, page: int) -> bool:
        """Insert-if-absent: True exactly once per key until cleared."""
        key = (identity, page)
        if key in self._keys:
            metrics.record_dedup_hit(page)
            return False
        self._keys.add(key)
        metrics.record_dedup_cache_size(len(self._keys))
        return True

    def clear_for(self, identity: DeviceIdentity, pages: Iterable[int] = IDENTIFICATION_PAGES) -> int:
        """Remove ``pages`` for ``identity``; returns how many keys were removed."""
        removed = 0
        for page in pages:
            if (identity, page) in self._keys:
                self._keys.discard((identity, page))
                removed += 1
        metrics.record_dedup_cache_size(len(self._keys))
        return removed


@dataclass
class RequestResult:
    """Outcome of one request-data-page send.

    Attributes:
        success: Whether the command was acknowledged
        channel: Channel the command was sent on
        page: Requested page
        attempts: Number of send attempts made
        last_error: Transport error code of the last failed attempt
    """

    success: bool
    channel: int
    page: int
    attempts: int
    last_error: int | None = None


class RequestScheduler:
    """Sends page requests through the transport's acknowledged-send primitive.

    All calls happen on the event loop thread; a request in progress always
    finishes its retry budget before control returns to the loop.
    """

    def __init__(
        self,
        transport: Transport,
        policy: RetryPolicy | None = None,
        cache: RequestDedupeCache | None = None,
    ) -> None:
        self.transport = transport
        self.policy = policy if policy is not None else RetryPolicy()
        self.cache = cache if cache is not None else RequestDedupeCache()

    def send_request(self, channel: int, command: bytes) -> RequestResult:
        """Send ``command`` with bounded retries.

        Raises:
            PageRequestError: If no attempt was acknowledged

        """
        page = command[6]
        last_error: int | None = None
        for attempt in self.policy.attempts():
            retry = f" (retry {attempt})" if attempt else ""
            ok = self.transport.send_acknowledged_data(channel, command, self.policy.attempt_timeout_ms)
            if ok:
                metrics.record_request_attempt(attempt + 1, "ok")
                logger.fine("[CH] #%d: [SendAcknowledgedData] Data Page 0x%02X%s | OK", channel, page, retry)
                return RequestResult(True, channel, page, attempt + 1, last_error)

            last_error = self.transport.get_last_error()
            metrics.record_request_attempt(attempt + 1, "failed")
            logger.warning(
                "[CH] #%d: [SendAcknowledgedData] Data Page 0x%02X%s | FAILED with 0x%02X (attempt %d of %d) | Raw Payload (8): %s",
                channel,
                page,
                retry,
                last_error,
                attempt + 1,
                self.policy.max_attempts,
                to_hex(command),
            )
            self.policy.backoff(attempt)
        raise PageRequestError(channel, page, self.policy.max_attempts, last_error)

    def request_page(
        self,
        channel: int,
        page: int,
        identity: DeviceIdentity | None = None,
        command: int = REQUEST_COMMAND_SINGLE_PAGE,
    ) -> bool:
        """Request ``page`` on ``channel``; False once the retry budget is spent."""
        try:
            self.send_request(channel, build_request_command(page, command))
        except PageRequestError as e:
            metrics.record_page_request(page, "failed")
            logger.warning("%s", e, extra={"identity": str(identity) if identity else None, "last_error": e.last_error})
            return False
        metrics.record_page_request(page, "ok")
        logger.debug(
            "[CH] #%d: Requested Data Page 0x%02X (%d)%s",
            channel,
            page,
            page,
            f" | {identity.describe()}" if identity else "",
        )
        return True

    def should_request_page_again(self, identity: DeviceIdentity, page: int) -> bool:
        return self.cache.should_request_page_again(identity, page)

    def clear_request_cache_for(self, identity: DeviceIdentity, pages: Iterable[int] = IDENTIFICATION_PAGES) -> int:
        removed = self.cache.clear_for(identity, pages)
        if removed:
            logger.debug("Cleared %d cached page requests for %s", removed, identity)
        return removed

    def request_asset_pages(self, channel: int, identity: DeviceIdentity) -> list[int]:
        """Request identification and supplementary pages not requested before.

        The identification page set goes first, then manufacturer, product
        and battery pages, each at most once per identity until cleared.

        Returns:
            Pages whose request was acknowledged

        """
        requested: list[int] = []
        if self.should_request_page_again(identity, PAGE_IDENTIFICATION_1):
            if self.request_page(channel, PAGE_IDENTIFICATION_1, identity, REQUEST_COMMAND_PAGE_SET):
                logger.info(
                    "[CH] #%d: [ASSET/70] Requested Asset Identification Pages from %s",
                    channel,
                    identity.describe(),
                )
                requested.append(PAGE_IDENTIFICATION_1)

        for page in SUPPLEMENTARY_PAGES:
            if self.should_request_page_again(identity, page) and self.request_page(channel, page, identity):
                requested.append(page)
        return requested

    def request_device_info(self, channel: int, identity: DeviceIdentity) -> list[int]:
        """Request manufacturer and product pages from a device of unknown profile."""
        requested: list[int] = []
        for page in (PAGE_MANUFACTURER_IDENT, PAGE_PRODUCT_INFO):
            if self.should_request_page_again(identity, page) and self.request_page(channel, page, identity):
                requested.append(page)
        return requested
