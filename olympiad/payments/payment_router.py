"""
Razorpay order creation

Amounts arrive in rupees and are sent to Razorpay in paise (x 100).
Payment confirmation is done by the client flipping paymentStatus
through the student / coordinator endpoints.
"""

import logging
from datetime import datetime

import razorpay
from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from olympiad.core.config import Settings
from olympiad.core.dependencies import CurrentUser, get_current_user, get_payments
from olympiad.core.errors import UpstreamError

logger = logging.getLogger(__name__)

CURRENCY = "INR"

router = APIRouter(prefix="/api/payment", tags=["Payment"])


class RazorpayGateway:

    def __init__(self, settings: Settings):
        self.key_id = settings.RAZORPAY_KEY_ID
        self.client = razorpay.Client(auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET))

    async def create_order(self, amount_rupees: float, receipt: str) -> dict:
        """Returns {"orderId", "amount" (paise), "currency"}"""
        order_data = {
            "amount": int(round(amount_rupees * 100)),
            "currency": CURRENCY,
            "receipt": receipt,
        }
        try:
            order = await run_in_threadpool(self.client.order.create, data=order_data)
        except Exception as e:
            logger.error(f"[PAYMENT] Razorpay order creation failed: {e}")
            raise UpstreamError("Order creation failed")

        return {"orderId": order["id"], "amount": order_data["amount"], "currency": CURRENCY}


# ==================== SCHEMAS ====================

class CreateOrderRequest(BaseModel):
    amount: float = Field(..., gt=0, description="Amount in rupees")


# ==================== ROUTES ====================

@router.post("/create-order")
async def create_order(
    data: CreateOrderRequest,
    user: CurrentUser = Depends(get_current_user),
    payments=Depends(get_payments),
):
    """
    Create a Razorpay order for the authenticated user
    """
    receipt = f"receipt_{user.uid[:8]}_{int(datetime.utcnow().timestamp())}"
    order = await payments.create_order(data.amount, receipt)
    logger.info(f"[PAYMENT] Order {order['orderId']} created for {user.role.value} {user.uid}")
    return {"status": "success", **order}
