"""Payment provider callback. Checkout itself happens at the provider."""

import hmac
import logging

from fastapi import APIRouter, Header, HTTPException, status

from golaco.config import settings
from golaco.models.user import PurchaseCallback
from golaco.services import user_service

logger = logging.getLogger("golaco.billing")

router = APIRouter(prefix="/api/billing", tags=["billing"])


def _check_key(provided: str | None) -> None:
    expected = settings.BILLING_CALLBACK_KEY
    if not expected:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Billing callback disabled.")
    if not provided or not hmac.compare_digest(provided, expected):
        logger.warning("Billing callback rejected: bad key")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid billing key.")


@router.post("/callback")
async def purchase_callback(body: PurchaseCallback, x_billing_key: str | None = Header(None)):
    """Apply a confirmed purchase: a 24h boost or a plan upgrade."""
    _check_key(x_billing_key)
    user = await user_service.apply_purchase(body.user_id, body.product)
    return {
        "user_id": str(user["_id"]),
        "product": body.product.value,
        "reference": body.reference,
        "plan": user.get("plan"),
        "boost_expires_at": user.get("boost_expires_at"),
    }
