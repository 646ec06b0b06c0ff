"""Last-mile availability check of cart lines against the inventory service."""

from dataclasses import dataclass

import structlog

from checkout.cart.items import CartLineItem
from checkout.errors import InventoryUnavailable
from checkout.services.port import InventoryService, ItemAvailability, ServiceError

logger = structlog.get_logger(__name__)

CHECK_FAILED_MESSAGE = "Unable to verify availability. Please try again."


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    checks: tuple[ItemAvailability, ...] = ()
    message: str | None = None

    @property
    def unavailable(self) -> list[ItemAvailability]:
        return [check for check in self.checks if not check.available]


class InventoryAvailabilityChecker:
    """Re-validates that every line can still be bought.

    Safe to call repeatedly; each call replaces ``last_check``. Service
    failures come back as an unavailable result, never as an exception.
    ``sources`` restricts the check to lines fulfilled by those back-ends.
    """

    def __init__(self, service: InventoryService, sources: tuple[str, ...] | None = None) -> None:
        self.service = service
        self.sources = sources
        self.checking = False
        self.last_check: AvailabilityResult | None = None

    def _eligible(self, items: list[CartLineItem]) -> list[CartLineItem]:
        if self.sources is None:
            return list(items)
        return [item for item in items if item.source in self.sources]

    async def check_availability(self, items: list[CartLineItem]) -> AvailabilityResult:
        self.checking = True
        try:
            result = await self._check(items)
        finally:
            self.checking = False
        self.last_check = result
        return result

    async def _check(self, items: list[CartLineItem]) -> AvailabilityResult:
        eligible = self._eligible(items)
        if not eligible:
            return AvailabilityResult(available=True, message="No items require an availability check")

        variants = [{"variant_id": item.variant_id, "quantity": item.quantity} for item in eligible]
        try:
            report = await self.service.check_variants(variants)
        except ServiceError as exc:
            logger.warning("availability_check_failed", error=exc.message, item_count=len(eligible))
            return AvailabilityResult(available=False, message=CHECK_FAILED_MESSAGE)

        names = {item.variant_id: item.name for item in eligible}
        checks = tuple(
            ItemAvailability(
                variant_id=check.variant_id,
                available=check.available,
                name=check.name or names.get(check.variant_id, ""),
                reason=check.reason or ("" if check.available else "Currently unavailable"),
            )
            for check in report.checks
        )

        if report.all_available:
            return AvailabilityResult(available=True, checks=checks, message="All items are available")

        count = report.unavailable_count or sum(1 for check in checks if not check.available)
        logger.info("items_unavailable", unavailable_count=count)
        return AvailabilityResult(available=False, checks=checks, message=f"{count} item(s) unavailable")

    def clear_last_check(self) -> None:
        self.last_check = None


def unavailable_error(result: AvailabilityResult) -> InventoryUnavailable:
    return InventoryUnavailable(
        result.message or CHECK_FAILED_MESSAGE,
        items=[(check.variant_id, check.name, check.reason) for check in result.unavailable],
    )
