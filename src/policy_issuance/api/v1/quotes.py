"""Quote API endpoints."""

from uuid import UUID

from beartype import beartype
from fastapi import APIRouter, Depends, Query, status

from ...models.quote import Quote, QuoteCreate, QuoteStatus
from ...schemas.payment import PaymentSummary, SubscriptionResponse
from ...schemas.quote import (
    CheckoutRequest,
    CheckoutResponse,
    DeleteQuoteResponse,
    QuoteListResponse,
    SaveQuoteRequest,
)
from ...services.payments.checkout import CheckoutService
from ...services.quote_lifecycle import QuoteLifecycle
from ...services.subscription import SubscriptionService
from ..dependencies import (
    get_checkout_service,
    get_quote_lifecycle,
    get_subscription_service,
)
from ..response_patterns import unwrap_or_raise

router = APIRouter(prefix="/quotes", tags=["quotes"])


@router.post("/", response_model=Quote, status_code=status.HTTP_201_CREATED)
@beartype
async def create_quote(
    request: QuoteCreate,
    lifecycle: QuoteLifecycle = Depends(get_quote_lifecycle),
) -> Quote:
    """Price criteria and store the result as a simulation quote."""
    return unwrap_or_raise(await lifecycle.create(request))


@router.get("/", response_model=QuoteListResponse)
@beartype
async def list_quotes(
    owner_id: UUID,
    quote_status: QuoteStatus | None = Query(default=None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    lifecycle: QuoteLifecycle = Depends(get_quote_lifecycle),
) -> QuoteListResponse:
    quotes = unwrap_or_raise(
        await lifecycle.list_for_owner(owner_id, quote_status, limit, offset)
    )
    return QuoteListResponse(quotes=quotes, total=len(quotes), limit=limit, offset=offset)


@router.get("/{quote_id}", response_model=Quote)
@beartype
async def get_quote(
    quote_id: UUID,
    lifecycle: QuoteLifecycle = Depends(get_quote_lifecycle),
) -> Quote:
    return unwrap_or_raise(await lifecycle.get(quote_id))


@router.get("/{quote_id}/subscription", response_model=SubscriptionResponse)
@beartype
async def get_subscription(
    quote_id: UUID,
    owner_id: UUID,
    subscriptions: SubscriptionService = Depends(get_subscription_service),
) -> SubscriptionResponse:
    """Quote, latest payment and contract, for polling after checkout."""
    state = unwrap_or_raise(await subscriptions.state(quote_id, owner_id))
    return SubscriptionResponse(
        quote=state.quote,
        payment=PaymentSummary.from_payment(state.payment) if state.payment else None,
        contract=state.contract,
    )


@router.post("/{quote_id}/save", response_model=Quote)
@beartype
async def save_quote(
    quote_id: UUID,
    request: SaveQuoteRequest,
    lifecycle: QuoteLifecycle = Depends(get_quote_lifecycle),
) -> Quote:
    """Attach a simulation to its subscriber; saved quotes do not expire."""
    return unwrap_or_raise(
        await lifecycle.save(quote_id, request.owner_id, request.name, request.notes)
    )


@router.post(
    "/{quote_id}/checkout",
    response_model=CheckoutResponse,
    status_code=status.HTTP_201_CREATED,
)
@beartype
async def checkout_quote(
    quote_id: UUID,
    request: CheckoutRequest,
    checkout: CheckoutService = Depends(get_checkout_service),
) -> CheckoutResponse:
    """Create a pending payment and, for hosted checkouts, the payment URL."""
    session = unwrap_or_raise(
        await checkout.start_checkout(
            quote_id,
            request.owner_id,
            request.method,
            request.aggregator,
            request.beneficiaries,
            request.customer_phone,
        )
    )
    return CheckoutResponse(
        payment_id=session.payment.id,
        payment_reference=session.payment.reference,
        payment_status=session.payment.status,
        amount=session.payment.amount,
        quote_id=session.quote.id,
        quote_status=session.quote.status,
        payment_url=session.checkout.payment_url if session.checkout else None,
        payment_token=session.checkout.payment_token if session.checkout else None,
    )


@router.delete("/{quote_id}", response_model=DeleteQuoteResponse)
@beartype
async def delete_quote(
    quote_id: UUID,
    owner_id: UUID,
    lifecycle: QuoteLifecycle = Depends(get_quote_lifecycle),
) -> DeleteQuoteResponse:
    deleted = unwrap_or_raise(await lifecycle.delete(quote_id, owner_id))
    return DeleteQuoteResponse(quote_id=deleted)
