"""FastAPI routes for the Checkout domain.

One in-process ``CheckoutStateMachine`` per checkout session, addressed by
the session aggregate's id. Actions answer with the resulting session view;
a recoverable failure is reported in the body with ``ok: false``.
"""

import os
from collections import OrderedDict
from dataclasses import asdict

import structlog
from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from protean.exceptions import InvalidOperationError, ValidationError

from checkout.api.schemas import (
    ActionResponse,
    CartItemSchema,
    ConfirmPaymentRequest,
    CreateSessionRequest,
    CustomerInfoSchema,
    ErrorSchema,
    IncompatibleItemSchema,
    LoginRequest,
    MergeDecisionRequest,
    MergeSchema,
    NotificationSchema,
    RemoveItemsRequest,
    SelectRateRequest,
    SessionResponse,
    ShippingRateSchema,
    SignupRequest,
    TotalsSchema,
    UnavailableItemSchema,
    UpdateCustomerRequest,
)
from checkout.cart.items import CartLineItem
from checkout.cart.store import LocalCartStore
from checkout.errors import CheckoutError
from checkout.services import get_services
from checkout.session.machine import CheckoutOutcome, CheckoutStateMachine, error_message
from checkout.session.session import CheckoutStep
from checkout.utils.logging import bind_checkout_context

logger = structlog.get_logger(__name__)

# Least recently used first; completed checkouts are dropped as soon as they finish.
_sessions: OrderedDict[str, CheckoutStateMachine] = OrderedDict()


def max_sessions() -> int:
    return int(os.environ.get("CHECKOUT_MAX_SESSIONS", 1000))


def reset_sessions() -> None:
    _sessions.clear()


def _register(machine: CheckoutStateMachine) -> str:
    session_id = str(machine.session.id)
    _sessions[session_id] = machine
    while len(_sessions) > max_sessions():
        evicted, _ = _sessions.popitem(last=False)
        logger.info("checkout_session_evicted", evicted_session_id=evicted)
    return session_id


def _machine(session_id: str) -> CheckoutStateMachine:
    machine = _sessions.get(session_id)
    if machine is None:
        raise HTTPException(status_code=404, detail=f"Checkout session {session_id} not found")
    _sessions.move_to_end(session_id)
    bind_checkout_context(session_id=session_id)
    return machine


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------
def _item_schema(item: CartLineItem) -> CartItemSchema:
    return CartItemSchema(
        id=item.id,
        product_id=item.product_id,
        variant_id=item.variant_id,
        name=item.name,
        unit_price=item.unit_price,
        quantity=item.quantity,
        size=item.size,
        color=item.color,
        source=item.source,
        shipping_regions=list(item.shipping_regions) if item.shipping_regions is not None else None,
        image_url=item.image_url,
    )


def _session_response(machine: CheckoutStateMachine) -> SessionResponse:
    session = machine.session
    negotiator = machine.negotiator
    return SessionResponse(
        session_id=str(session.id),
        view=machine.view,
        step=session.step,
        customer=CustomerInfoSchema(**session.customer_info.as_dict()),
        items=[_item_schema(item) for item in machine.items],
        incompatible=[
            IncompatibleItemSchema(
                item_id=entry.item.id,
                name=entry.item.name,
                available_regions=list(entry.available_regions),
                requested_country=entry.requested_country,
            )
            for entry in machine.incompatible
        ],
        restriction_message=machine.restriction_message,
        rates=[ShippingRateSchema(**asdict(rate)) for rate in machine.rates.rates],
        selected_rate_id=session.selected_rate_id,
        totals=TotalsSchema(**machine.totals.as_dict()),
        order_number=session.order_number,
        client_secret=session.client_secret,
        wants_to_signup=bool(session.wants_to_signup),
        authenticated=machine.auth is not None,
        is_loading_location=machine.location.is_loading_location,
        merge=MergeSchema(
            pending=negotiator.pending,
            guest_count=len(negotiator.guest_items),
            account_count=len(negotiator.account_items),
        ),
        notifications=[
            NotificationSchema(level=note.level, message=note.message) for note in machine.drain_notifications()
        ],
    )


def _error_schema(error: Exception) -> ErrorSchema:
    if isinstance(error, ValidationError):
        return ErrorSchema(kind="validation_error", message=error_message(error), fields=error.messages)
    if isinstance(error, CheckoutError):
        return ErrorSchema(kind=error.kind, message=error.message)
    return ErrorSchema(kind="invalid_operation", message=error_message(error))


def _action_response(machine: CheckoutStateMachine, outcome: CheckoutOutcome) -> ActionResponse:
    unavailable = []
    if outcome.unavailable is not None:
        unavailable = [
            UnavailableItemSchema(variant_id=variant_id, name=name, reason=reason)
            for variant_id, name, reason in outcome.unavailable.items
        ]
    return ActionResponse(
        ok=outcome.ok,
        error=_error_schema(outcome.error) if outcome.error is not None else None,
        unavailable=unavailable,
        session=_session_response(machine),
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ValidationError)
    async def validation_error_handler(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": exc.messages})

    @app.exception_handler(InvalidOperationError)
    async def invalid_operation_handler(request: Request, exc: InvalidOperationError):
        return JSONResponse(status_code=409, content={"detail": error_message(exc)})


# ---------------------------------------------------------------------------
# Checkout Session Router
# ---------------------------------------------------------------------------
router = APIRouter(prefix="/checkout/sessions", tags=["checkout"])


@router.post("", status_code=201, response_model=SessionResponse)
async def create_session(body: CreateSessionRequest) -> SessionResponse:
    guest_cart = LocalCartStore()
    for item in body.items:
        guest_cart.add(CartLineItem(**{**item.model_dump(), "shipping_regions": _regions(item)}))
    machine = CheckoutStateMachine(get_services(), guest_store=guest_cart)
    await machine.start()
    bind_checkout_context(session_id=_register(machine))
    return _session_response(machine)


def _regions(item: CartItemSchema) -> tuple[str, ...] | None:
    return tuple(item.shipping_regions) if item.shipping_regions is not None else None


@router.get("/{session_id}", response_model=SessionResponse)
async def get_session(session_id: str) -> SessionResponse:
    return _session_response(_machine(session_id))


@router.patch("/{session_id}/customer", response_model=ActionResponse)
async def update_customer(session_id: str, body: UpdateCustomerRequest) -> ActionResponse:
    machine = _machine(session_id)
    updates = body.model_dump(exclude_none=True)
    zip_code = updates.pop("zip", None)

    outcome = CheckoutOutcome.success()
    if updates:
        outcome = await machine.update_customer_info(**updates)
    if zip_code is not None:
        outcome = await machine.change_zip(zip_code)
    return _action_response(machine, outcome)


@router.post("/{session_id}/addresses/{address_id}/select", response_model=ActionResponse)
async def select_saved_address(session_id: str, address_id: str) -> ActionResponse:
    machine = _machine(session_id)
    return _action_response(machine, await machine.select_saved_address(address_id))


@router.post("/{session_id}/addresses/new", response_model=ActionResponse)
async def start_new_address(session_id: str) -> ActionResponse:
    machine = _machine(session_id)
    return _action_response(machine, await machine.start_new_address())


@router.post("/{session_id}/rate", response_model=ActionResponse)
async def select_rate(session_id: str, body: SelectRateRequest) -> ActionResponse:
    machine = _machine(session_id)
    return _action_response(machine, machine.select_rate(body.rate_id))


@router.post("/{session_id}/inventory-check", response_model=ActionResponse)
async def check_inventory(session_id: str) -> ActionResponse:
    machine = _machine(session_id)
    return _action_response(machine, await machine.check_inventory())


@router.post("/{session_id}/items/remove", response_model=ActionResponse)
async def remove_items(session_id: str, body: RemoveItemsRequest) -> ActionResponse:
    machine = _machine(session_id)
    return _action_response(machine, await machine.remove_items(body.ids))


@router.post("/{session_id}/login", response_model=ActionResponse)
async def login(session_id: str, body: LoginRequest) -> ActionResponse:
    machine = _machine(session_id)
    return _action_response(machine, await machine.login(body.email, body.password))


@router.post("/{session_id}/merge", response_model=ActionResponse)
async def resolve_merge(session_id: str, body: MergeDecisionRequest) -> ActionResponse:
    machine = _machine(session_id)
    if body.decision == "confirm":
        outcome = await machine.confirm_merge()
    else:
        outcome = await machine.cancel_merge()
    return _action_response(machine, outcome)


@router.post("/{session_id}/signup", response_model=ActionResponse)
async def set_signup(session_id: str, body: SignupRequest) -> ActionResponse:
    machine = _machine(session_id)
    await machine.set_signup(body.wants_to_signup, body.password, body.confirm_password)
    return _action_response(machine, CheckoutOutcome.success())


@router.post("/{session_id}/submit", response_model=ActionResponse)
async def submit_order(session_id: str) -> ActionResponse:
    machine = _machine(session_id)
    return _action_response(machine, await machine.submit_order())


@router.post("/{session_id}/payment-intent/retry", response_model=ActionResponse)
async def retry_payment_intent(session_id: str) -> ActionResponse:
    machine = _machine(session_id)
    return _action_response(machine, await machine.retry_payment_intent())


@router.post("/{session_id}/payment/confirm", response_model=ActionResponse)
async def confirm_payment(session_id: str, body: ConfirmPaymentRequest) -> ActionResponse:
    machine = _machine(session_id)
    response = _action_response(machine, await machine.confirm_payment(body.payment_intent_id))
    if machine.step is CheckoutStep.COMPLETE:
        _sessions.pop(session_id, None)
    return response
