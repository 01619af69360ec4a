"""
Shopify mandatory GDPR webhooks.
"""
from fastapi import APIRouter, HTTPException, Request, status
from pydantic import ValidationError
from sqlalchemy import or_, select

from orderhub.core.config import settings
from orderhub.core.database import DbSession
from orderhub.core.logging import get_logger
from orderhub.core.security import verify_webhook_hmac
from orderhub.models.order import Order
from orderhub.repositories.store import StoreRepository
from orderhub.schemas.gdpr import CustomersDataRequest, CustomersDataResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/integrations", tags=["gdpr"])

HMAC_HEADER = "x-shopify-hmac-sha256"

EXPORTED_ORDER_FIELDS = (
    "id",
    "external_id",
    "order_number",
    "customer_name",
    "customer_email",
    "total_amount",
    "currency",
    "financial_status",
    "fulfillment_status",
    "shipping_city",
    "shipping_province",
    "shipping_country_code",
    "order_date",
)


@router.post("/{provider}/gdpr/customers-data-request", response_model=CustomersDataResponse)
async def customers_data_request(
    provider: str,
    request: Request,
    session: DbSession,
) -> CustomersDataResponse:
    """
    customers/data_request: return what is stored about a customer.

    The raw body must carry a valid base64 HMAC-SHA256 signature.
    """
    if provider.lower() != "shopify":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unsupported provider")

    body = await request.body()
    if not verify_webhook_hmac(body, request.headers.get(HMAC_HEADER), settings.shopify_webhook_secret):
        logger.warning("GDPR webhook signature rejected", provider=provider)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")

    try:
        payload = CustomersDataRequest.model_validate_json(body)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload") from e

    orders: list[dict] = []
    store = await StoreRepository(session).get_by_domain(payload.shop_domain)
    if store is not None:
        matches = []
        if payload.customer.email:
            matches.append(Order.customer_email == payload.customer.email)
        if payload.orders_requested:
            matches.append(Order.external_id.in_([str(o) for o in payload.orders_requested]))
        if matches:
            result = await session.execute(
                select(Order).where(Order.store_id == store.id, or_(*matches))
            )
            for order in result.scalars().all():
                data = order.to_dict()
                orders.append({field: data.get(field) for field in EXPORTED_ORDER_FIELDS})

    logger.info(
        "GDPR customer data request served",
        shop=payload.shop_domain,
        customer_id=payload.customer.id,
        orders=len(orders),
    )
    return CustomersDataResponse(customer=payload.customer, orders=orders)
