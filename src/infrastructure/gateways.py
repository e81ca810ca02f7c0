"""
Outbound notification gateways.

Thin ``httpx`` clients for the two delivery services.  Each ``send`` call
delivers to exactly one recipient and raises on any transport or HTTP
error; fan-out and failure isolation live in ``src.workers.notifier``.
"""

from __future__ import annotations

from typing import Any

import httpx


class TwilioSmsGateway:
    """Twilio Programmable Messaging (form-encoded REST, basic auth)."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        account_sid: str,
        auth_token: str,
        from_number: str,
        api_base: str = "https://api.twilio.com/2010-04-01",
    ):
        self.client = client
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.url = f"{api_base}/Accounts/{account_sid}/Messages.json"

    async def send(self, to: str, body: str) -> dict[str, Any]:
        resp = await self.client.post(
            self.url,
            data={"To": to, "From": self.from_number, "Body": body},
            auth=(self.account_sid, self.auth_token),
        )
        resp.raise_for_status()
        return resp.json()


class ExpoPushGateway:
    """Expo push service; one message per device token."""

    def __init__(self, client: httpx.AsyncClient, url: str):
        self.client = client
        self.url = url

    async def send(self, message: dict[str, Any]) -> dict[str, Any]:
        resp = await self.client.post(
            self.url,
            json=[message],
            headers={"Accept": "application/json"},
        )
        resp.raise_for_status()
        return resp.json()
