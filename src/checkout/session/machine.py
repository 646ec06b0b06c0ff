"""CheckoutStateMachine: drives one checkout attempt end to end.

The machine owns the ``CheckoutSession`` aggregate and calls the supporting
components in order: location lookup and normalization while the address
is edited, the compatibility filter and rate fetcher after every
address-affecting change (``recompute``), the merge negotiator on login, the
inventory checker on demand and after a failed submission, and finally the
submission gateway.

Operations that can fail for reasons the customer can fix return a
``CheckoutOutcome`` and queue a ``Notification``. Calling an operation in the
wrong step raises, since that is a programming error in the caller.
"""

from dataclasses import dataclass

import structlog
from protean.exceptions import InvalidOperationError, ValidationError

from checkout.address.book import SavedAddressBook
from checkout.address.normalizer import normalize_region
from checkout.address.validation import (
    FieldError,
    as_messages,
    required_field_errors,
    summarize,
    validate_customer_info,
    validate_shipping_address,
)
from checkout.cart.items import CartLineItem
from checkout.cart.merge import CartMergeNegotiator, MergeDecision
from checkout.cart.store import LocalCartStore
from checkout.cart.totals import OrderTotals, compute_totals
from checkout.errors import CheckoutError, InventoryUnavailable, OrderSubmissionFailure, ShippingRestriction
from checkout.gateway.submission import OrderSubmissionGateway
from checkout.inventory.availability import InventoryAvailabilityChecker, unavailable_error
from checkout.location.lookup import AddressUpdate, LocationLookup, apply_updates
from checkout.services.port import AuthSession, CheckoutServices, PaymentIntent, PlacedOrder, ServiceError
from checkout.session.session import ADDRESS_FIELDS, CheckoutSession, CheckoutStep
from checkout.shipping.compatibility import IncompatibleItem, check_compatibility, format_incompatibility_message
from checkout.shipping.rates import ShippingRateFetcher

logger = structlog.get_logger(__name__)

MIN_PASSWORD_LENGTH = 6
EMPTY_VIEW = "empty"


@dataclass(frozen=True)
class Notification:
    level: str
    message: str


def error_message(error: Exception) -> str:
    if isinstance(error, CheckoutError):
        return error.message
    if isinstance(error, ValidationError):
        errors = [FieldError(field, message) for field, messages in error.messages.items() for message in messages]
        return summarize(errors)
    return str(error)


@dataclass(frozen=True)
class CheckoutOutcome:
    ok: bool
    error: Exception | None = None
    unavailable: InventoryUnavailable | None = None

    @classmethod
    def success(cls) -> "CheckoutOutcome":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: Exception, unavailable: InventoryUnavailable | None = None) -> "CheckoutOutcome":
        return cls(ok=False, error=error, unavailable=unavailable)

    @property
    def message(self) -> str | None:
        return error_message(self.error) if self.error is not None else None


class CheckoutStateMachine:
    def __init__(
        self,
        services: CheckoutServices,
        guest_store: LocalCartStore | None = None,
        inventory_sources: tuple[str, ...] | None = None,
    ) -> None:
        self.services = services
        self.guest_store = guest_store or LocalCartStore()
        self.negotiator = CartMergeNegotiator(self.guest_store, services.carts)
        self.location = LocationLookup(services.countries, services.postal)
        self.rates = ShippingRateFetcher(services.shipping)
        self.inventory = InventoryAvailabilityChecker(services.inventory, sources=inventory_sources)
        self.gateway = OrderSubmissionGateway(services.orders, services.payments)

        self.session: CheckoutSession | None = None
        self.auth: AuthSession | None = None
        self.address_book: SavedAddressBook | None = None
        self.items: list[CartLineItem] = []
        self.incompatible: list[IncompatibleItem] = []
        self.notifications: list[Notification] = []
        self.loading = False
        self.pending_order: PlacedOrder | None = None
        self.payment_intent: PaymentIntent | None = None
        self._signup_password = ""
        self._signup_confirmation = ""
        self._last_restriction = ""

    # -------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------
    @property
    def step(self) -> CheckoutStep:
        return CheckoutStep(self.session.step)

    @property
    def view(self) -> str:
        """The screen to show: the step, or ``empty`` for an empty cart before payment."""
        if self.session is None:
            return EMPTY_VIEW
        if self.step in (CheckoutStep.FORM, CheckoutStep.CART_MERGE) and not self.items:
            return EMPTY_VIEW
        return self.step.value

    @property
    def totals(self) -> OrderTotals:
        selected = self.rates.selected
        return compute_totals(self.items, selected.price if selected else None)

    @property
    def restriction_message(self) -> str:
        return format_incompatibility_message(self.incompatible, self.location.countries)

    def notify(self, level: str, message: str) -> None:
        self.notifications.append(Notification(level, message))

    def drain_notifications(self) -> list[Notification]:
        drained, self.notifications = self.notifications, []
        return drained

    def _fail(self, error: Exception, unavailable: InventoryUnavailable | None = None) -> CheckoutOutcome:
        self.notify("error", error_message(error))
        return CheckoutOutcome.failure(error, unavailable)

    def _require_session(self) -> CheckoutSession:
        if self.session is None:
            raise InvalidOperationError("Checkout has not been started")
        return self.session

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    async def start(self, auth: AuthSession | None = None) -> CheckoutOutcome:
        if self.session is not None:
            raise InvalidOperationError("Checkout was already started")

        self.session = CheckoutSession.create(customer_id=auth.user.id if auth else None)
        await self.location.load_countries()
        if self.location.last_error is not None:
            self.notify("warning", self.location.last_error.message)

        if auth is not None:
            self.auth = auth
            self.negotiator.attach_account(auth)
            self._prefill_profile()
            await self._load_address_book()

        logger.info("checkout_started", session_id=str(self.session.id), authenticated=auth is not None)
        return await self.refresh_cart()

    def _prefill_profile(self) -> None:
        info = self.session.customer_info.as_dict()
        user = self.auth.user
        updates = {
            field: value
            for field, value in (("name", user.name), ("email", user.email), ("phone", user.phone))
            if value and not info[field]
        }
        if updates:
            self.session.update_customer_info(**updates)

    async def _load_address_book(self) -> None:
        self.address_book = SavedAddressBook(self.services.addresses, self.auth.token)
        default = await self.address_book.load()
        if default is not None:
            self._apply(self.address_book.select(default))

    def _apply(self, updates: list[AddressUpdate]) -> None:
        if updates:
            info = apply_updates(self.session.customer_info, updates)
            self.session.update_customer_info(**info.as_dict())

    async def refresh_cart(self) -> CheckoutOutcome:
        self._require_session()
        try:
            self.items = await self.negotiator.active_store.items()
        except ServiceError as exc:
            logger.warning("cart_unavailable", error=exc.message)
            self.notify("error", "Unable to load your cart. Please try again.")
        return await self.recompute()

    # -------------------------------------------------------------------
    # Form editing
    # -------------------------------------------------------------------
    async def update_customer_info(self, **updates) -> CheckoutOutcome:
        session = self._require_session()
        if "state" in updates:
            updates["state"] = normalize_region(updates["state"])
        if "state" in updates or "country" in updates:
            values = session.customer_info.as_dict()
            country = updates.get("country", values["country"])
            current = updates.get("state", values["state"])
            for update in self.location.update_available_states(country, current):
                updates[update.field] = update.value

        session.update_customer_info(**updates)
        if set(updates) & set(ADDRESS_FIELDS):
            return await self.recompute()
        return CheckoutOutcome.success()

    async def change_country(self, country: str) -> CheckoutOutcome:
        return await self.update_customer_info(country=country)

    async def change_zip(self, zip_code: str) -> CheckoutOutcome:
        session = self._require_session()
        country = session.customer_info.as_dict()["country"]
        updates = await self.location.handle_zip_code_change(zip_code, country)

        if updates is None or self.step is not CheckoutStep.FORM:
            return CheckoutOutcome.success()

        if session.customer_info.as_dict()["country"] != country:
            updates = [update for update in updates if update.field == "zip"]

        self._apply(updates)
        autofill = self.location.last_autofill
        if autofill is not None and len(updates) > 1:
            self.notify("success", f"Auto-filled: {autofill.city}, {normalize_region(autofill.state)}")
        return await self.recompute()

    async def select_saved_address(self, address_id: str) -> CheckoutOutcome:
        self._require_session()
        address = self.address_book.find(address_id) if self.address_book else None
        if address is None:
            return self._fail(ValidationError({"address": ["Saved address not found"]}))

        updates = self.address_book.select(address)
        self.location.update_available_states(address.country, "")
        self._apply(updates)
        return await self.recompute()

    async def start_new_address(self) -> CheckoutOutcome:
        self._require_session()
        if self.address_book is not None:
            updates = self.address_book.start_new_address()
        else:
            updates = [AddressUpdate(field, "") for field in ADDRESS_FIELDS if field != "country"]
            updates.append(AddressUpdate("country", "US"))
        self.location.update_available_states("US", "")
        self._apply(updates)
        return await self.recompute()

    async def set_signup(self, wants_to_signup: bool, password: str = "", confirm_password: str = "") -> None:
        session = self._require_session()
        session.set_signup_intent(wants_to_signup)
        self._signup_password = password if wants_to_signup else ""
        self._signup_confirmation = confirm_password if wants_to_signup else ""

    def select_rate(self, rate_id: str) -> CheckoutOutcome:
        session = self._require_session()
        try:
            option = self.rates.select(rate_id)
        except ValidationError as exc:
            return self._fail(exc)
        session.select_rate(option.id, option.price)
        return CheckoutOutcome.success()

    # -------------------------------------------------------------------
    # Compatibility and rates
    # -------------------------------------------------------------------
    def _evaluate_compatibility(self) -> list[IncompatibleItem]:
        country = self.session.customer_info.as_dict()["country"]
        self.incompatible = check_compatibility(self.items, country, self.location.countries)
        return self.incompatible

    async def recompute(self) -> CheckoutOutcome:
        """Re-check compatibility, then re-quote rates when the address allows it."""
        session = self._require_session()
        if self.step is not CheckoutStep.FORM:
            return CheckoutOutcome.success()

        if self._evaluate_compatibility():
            self.rates.invalidate()
            session.clear_rate()
            message = self.restriction_message
            restriction = ShippingRestriction(message, self.incompatible)
            if message != self._last_restriction:
                self._last_restriction = message
                self.notify("error", message)
            return CheckoutOutcome.failure(restriction)
        self._last_restriction = ""

        info = session.customer_info
        if not self.items or not self.rates.ready(info, self.incompatible):
            self.rates.invalidate()
            session.clear_rate()
            return CheckoutOutcome.success()

        options = await self.rates.fetch(info, self.items)
        if options is None or self.step is not CheckoutStep.FORM:
            return CheckoutOutcome.success()

        if self.rates.last_error is not None:
            session.clear_rate()
            self.notify("warning", self.rates.last_error.message)
            return CheckoutOutcome.failure(self.rates.last_error)

        selected = self.rates.selected
        if selected is not None:
            session.select_rate(selected.id, selected.price)
        else:
            session.clear_rate()
        return CheckoutOutcome.success()

    # -------------------------------------------------------------------
    # Inventory
    # -------------------------------------------------------------------
    async def check_inventory(self) -> CheckoutOutcome:
        self._require_session()
        result = await self.inventory.check_availability(self.items)
        if result.available:
            self.notify("success", result.message or "All items are available")
            return CheckoutOutcome.success()
        error = unavailable_error(result)
        return self._fail(error, unavailable=error if error.items else None)

    async def remove_items(self, ids: list[str]) -> CheckoutOutcome:
        """Remove lines by line id or variant id, as offered by restriction and inventory errors."""
        self._require_session()
        wanted = set(ids)
        item_ids = [item.id for item in self.items if item.id in wanted or item.variant_id in wanted]
        try:
            await self.negotiator.active_store.remove(item_ids)
        except ServiceError as exc:
            logger.warning("cart_item_removal_failed", error=exc.message)
            self.notify("error", "Unable to remove items from your cart. Please try again.")
        self.inventory.clear_last_check()
        return await self.refresh_cart()

    # -------------------------------------------------------------------
    # Authentication and cart merge
    # -------------------------------------------------------------------
    async def login(self, email: str, password: str) -> CheckoutOutcome:
        session = self._require_session()
        if self.auth is not None:
            raise InvalidOperationError("Already logged in")
        if self.step is not CheckoutStep.FORM:
            raise InvalidOperationError(f"Cannot log in during step '{self.step.value}'")

        try:
            auth = await self.services.identity.login(email, password)
        except ServiceError as exc:
            logger.info("checkout_login_failed", status=exc.status_code)
            return self._fail(ValidationError({"login": [exc.message]}))

        self.auth = auth
        session.authenticate(auth.user.id)
        self._prefill_profile()

        decision = await self.negotiator.on_login(auth)
        if self.negotiator.last_error is not None:
            self.notify("warning", self.negotiator.last_error.message)

        if decision is MergeDecision.PROMPT:
            session.request_cart_merge()
            self.notify("info", "You have items saved in your account. Choose which cart to use.")
            return CheckoutOutcome.success()

        session.resolve_cart_merge(decision.value, self.negotiator.active_store.identity)
        if self.negotiator.last_error is None:
            self.notify("success", "Logged in successfully!")
        await self._load_address_book()
        return await self.refresh_cart()

    async def confirm_merge(self) -> CheckoutOutcome:
        session = self._require_session()
        resolution = await self.negotiator.confirm()
        session.resolve_cart_merge(resolution.value, self.negotiator.active_store.identity)
        self.notify("success", "Using your saved cart.")
        await self._load_address_book()
        return await self.refresh_cart()

    async def cancel_merge(self) -> CheckoutOutcome:
        session = self._require_session()
        resolution = await self.negotiator.cancel()
        session.resolve_cart_merge(resolution.value, self.negotiator.active_store.identity)
        self.notify("success", "Continuing with your current cart.")
        await self._load_address_book()
        return await self.refresh_cart()

    # -------------------------------------------------------------------
    # Submission
    # -------------------------------------------------------------------
    def validate_submission(self) -> CheckoutOutcome:
        """Run the submission gates in order; the first failure wins."""
        session = self._require_session()
        values = session.customer_info.as_dict()

        if self._evaluate_compatibility():
            return CheckoutOutcome.failure(ShippingRestriction(self.restriction_message, self.incompatible))

        missing = required_field_errors(values)
        if missing:
            return CheckoutOutcome.failure(ValidationError(as_messages(missing)))

        contact = validate_customer_info(values)
        if contact:
            return CheckoutOutcome.failure(ValidationError(as_messages(contact)))

        # phone, state, postal format; only the first problem is reported
        address = validate_shipping_address(values)
        if address:
            return CheckoutOutcome.failure(ValidationError(as_messages(address[:1])))

        if session.wants_to_signup:
            if not self._signup_password or not self._signup_confirmation:
                return CheckoutOutcome.failure(
                    ValidationError({"password": ["Password and confirmation are required to create an account"]})
                )
            if self._signup_password != self._signup_confirmation:
                return CheckoutOutcome.failure(ValidationError({"password": ["Passwords do not match"]}))
            if len(self._signup_password) < MIN_PASSWORD_LENGTH:
                return CheckoutOutcome.failure(
                    ValidationError({"password": [f"Password must be at least {MIN_PASSWORD_LENGTH} characters"]})
                )

        if not self.items:
            return CheckoutOutcome.failure(ValidationError({"cart": ["Your cart is empty"]}))

        if self.rates.rates and self.rates.selected is None:
            return CheckoutOutcome.failure(ValidationError({"shipping_rate": ["Please select a shipping method"]}))

        return CheckoutOutcome.success()

    async def submit_order(self) -> CheckoutOutcome:
        session = self._require_session()
        if self.loading:
            logger.info("duplicate_submission_refused", session_id=str(session.id))
            return CheckoutOutcome.failure(
                InvalidOperationError("An order submission is already in progress")
            )
        if self.step is not CheckoutStep.FORM:
            raise InvalidOperationError(f"Cannot submit an order during step '{self.step.value}'")

        self.loading = True
        try:
            if self.pending_order is not None:
                return await self._issue_payment_intent()

            gate = self.validate_submission()
            if not gate.ok:
                self.notify("error", gate.message)
                return gate

            totals = self.totals
            try:
                order = await self._place_order(totals)
            except OrderSubmissionFailure as failure:
                return await self._recover_from_failure(failure)

            self.pending_order = order
            session.record_order(order.order_number, totals.shipping, totals.tax, totals.total)

            if self.address_book is not None:
                await self.address_book.save_after_order(session.customer_info)

            return await self._issue_payment_intent()
        finally:
            self.loading = False

    async def _place_order(self, totals: OrderTotals) -> PlacedOrder:
        info = self.session.customer_info
        rate = self.rates.selected
        if self.auth is not None and not self.session.wants_to_signup:
            return await self.gateway.submit_authenticated(self.auth.token, info, self.items, totals, rate)

        credentials = None
        if self.session.wants_to_signup:
            credentials = {"email": info.as_dict()["email"], "password": self._signup_password}
        return await self.gateway.submit_guest(info, self.items, totals, rate, credentials)

    async def _recover_from_failure(self, failure: OrderSubmissionFailure) -> CheckoutOutcome:
        result = await self.inventory.check_availability(self.items)
        unavailable = None
        if not result.available and result.unavailable:
            unavailable = unavailable_error(result)
            self.notify("error", unavailable.message)
        return self._fail(failure, unavailable=unavailable)

    async def _issue_payment_intent(self) -> CheckoutOutcome:
        session = self.session
        email = session.customer_info.as_dict()["email"]
        try:
            intent = await self.gateway.create_payment_intent(
                session.total_amount, self.pending_order.order_number, email
            )
        except OrderSubmissionFailure as failure:
            return self._fail(failure)

        self.payment_intent = intent
        session.enter_payment(intent.client_secret)
        self.notify("success", f"Order {self.pending_order.order_number} created! Please complete your payment.")
        return CheckoutOutcome.success()

    async def retry_payment_intent(self) -> CheckoutOutcome:
        self._require_session()
        if self.pending_order is None:
            raise InvalidOperationError("No unpaid order to retry payment for")
        if self.step is not CheckoutStep.FORM:
            raise InvalidOperationError(f"Cannot retry payment during step '{self.step.value}'")
        if self.loading:
            return CheckoutOutcome.failure(InvalidOperationError("An order submission is already in progress"))

        self.loading = True
        try:
            return await self._issue_payment_intent()
        finally:
            self.loading = False

    async def confirm_payment(self, payment_intent_id: str | None = None) -> CheckoutOutcome:
        session = self._require_session()
        if self.step is not CheckoutStep.PAYMENT:
            raise InvalidOperationError(f"Cannot confirm payment during step '{self.step.value}'")

        intent_id = payment_intent_id or self.payment_intent.payment_intent_id
        try:
            await self.gateway.confirm_payment(intent_id, session.order_number)
        except OrderSubmissionFailure as failure:
            return self._fail(failure)

        session.complete()
        try:
            await self.negotiator.active_store.clear()
        except ServiceError as exc:
            logger.warning("cart_clear_failed", error=exc.message)
        self.items = []
        self.notify("success", f"Payment received for order {session.order_number}. Thank you!")
        logger.info("checkout_completed", order_number=session.order_number)
        return CheckoutOutcome.success()
