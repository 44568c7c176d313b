"""
Typed clients for the one-way side-effect collaborators.

Both are fire-and-forget from the engine's point of view: they are only
called by the dispatcher worker, which owns retrying and logging.
"""

from __future__ import annotations

import httpx
from pydantic import BaseModel, Field

from carpool.domain.enums import NotificationType


class PaymentInitiation(BaseModel):
    ride_id: int
    rider_id: int
    amount: float = Field(..., ge=0)
    method: str = "UPI"


class NotificationMessage(BaseModel):
    user_id: int
    message: str
    type: NotificationType


class PaymentGateway:
    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    async def initiate(self, payment: PaymentInitiation) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(self.url, json=payment.model_dump(mode="json"))
            response.raise_for_status()


class NotificationGateway:
    def __init__(self, url: str, timeout: float = 5.0):
        self.url = url
        self.timeout = timeout

    async def send(self, notification: NotificationMessage) -> None:
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.post(
                self.url, json=notification.model_dump(mode="json")
            )
            response.raise_for_status()
