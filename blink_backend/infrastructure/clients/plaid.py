"""Plaid HTTP client for linking, transaction sync, balances and transfers"""

import logging
import httpx
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional

from blink_backend.config import Settings
from blink_backend.domain.exceptions import PlaidAPIError
from blink_backend.domain.models import PlaidAccount, PlaidTransaction, SyncPage, TransferSpeed
from blink_backend.infrastructure.observability.metrics import plaid_failures_counter

PLAID_ENVIRONMENTS = {
    "sandbox": "https://sandbox.plaid.com",
    "development": "https://development.plaid.com",
    "production": "https://production.plaid.com",
}

SYNC_PAGE_SIZE = 500


def _parse_account(raw: Dict[str, Any]) -> PlaidAccount:
    balances = raw.get("balances") or {}
    return PlaidAccount(
        account_id=raw["account_id"],
        name=raw.get("name") or raw.get("official_name") or "",
        type=raw.get("type") or "",
        subtype=raw.get("subtype"),
        mask=raw.get("mask"),
        available_balance=balances.get("available"),
        current_balance=balances.get("current"),
        currency=balances.get("iso_currency_code") or "USD",
    )


def _parse_transaction(raw: Dict[str, Any]) -> PlaidTransaction:
    """Prefer personal_finance_category, fall back to the legacy hierarchy"""
    pfc = raw.get("personal_finance_category") or {}
    legacy = raw.get("category") or []
    return PlaidTransaction(
        transaction_id=raw["transaction_id"],
        account_id=raw["account_id"],
        amount=float(raw["amount"]),
        date=date.fromisoformat(raw["date"]),
        name=raw.get("name") or "",
        original_description=raw.get("original_description"),
        category=pfc.get("primary") or (legacy[0] if legacy else None),
        category_detailed=pfc.get("detailed") or (", ".join(legacy) if legacy else None),
        merchant_name=raw.get("merchant_name"),
        pending=bool(raw.get("pending", False)),
    )


class PlaidClient:
    """Client for the Plaid REST API"""

    def __init__(self, settings: Settings, base_url: Optional[str] = None, timeout: Optional[float] = None):
        self.settings = settings
        self.base_url = base_url or PLAID_ENVIRONMENTS.get(settings.plaid_env, PLAID_ENVIRONMENTS["sandbox"])
        self.timeout = timeout or settings.http_timeout_seconds

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        POST to a Plaid endpoint with client credentials.

        Raises:
            PlaidAPIError: On timeout, transport failure, or a Plaid error body.
                Plaid's error_code/error_type/error_message are passed through.
        """
        headers = {
            "PLAID-CLIENT-ID": self.settings.plaid_client_id,
            "PLAID-SECRET": self.settings.plaid_secret,
        }
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(f"{self.base_url}{endpoint}", json=payload, headers=headers)
            except httpx.TimeoutException as e:
                plaid_failures_counter.labels(endpoint=endpoint).inc()
                raise PlaidAPIError(f"Plaid timeout after {self.timeout}s") from e
            except httpx.HTTPError as e:
                plaid_failures_counter.labels(endpoint=endpoint).inc()
                raise PlaidAPIError(f"Plaid request failed: {e}") from e

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code >= 400:
            plaid_failures_counter.labels(endpoint=endpoint).inc()
            logging.warning(
                "Plaid request failed",
                extra={
                    "endpoint": endpoint,
                    "status_code": response.status_code,
                    "error_code": body.get("error_code"),
                },
            )
            raise PlaidAPIError(
                f"Plaid API error: {response.status_code}",
                error_code=body.get("error_code"),
                error_type=body.get("error_type"),
                error_message=body.get("error_message"),
            )
        return body

    async def create_link_token(self, user_id: str) -> Dict[str, Any]:
        return await self._post(
            "/link/token/create",
            {
                "user": {"client_user_id": user_id},
                "client_name": self.settings.plaid_client_name,
                "products": ["transactions"],
                "country_codes": ["US"],
                "language": "en",
                "webhook": self.settings.plaid_webhook_url,
            },
        )

    async def exchange_public_token(self, public_token: str) -> Dict[str, str]:
        """Returns {"access_token", "item_id"}"""
        data = await self._post("/item/public_token/exchange", {"public_token": public_token})
        return {"access_token": data["access_token"], "item_id": data["item_id"]}

    async def create_sandbox_public_token(self, institution_id: str = "ins_109508") -> str:
        data = await self._post(
            "/sandbox/public_token/create",
            {"institution_id": institution_id, "initial_products": ["transactions"]},
        )
        return data["public_token"]

    async def get_accounts(self, access_token: str) -> List[PlaidAccount]:
        data = await self._post("/accounts/get", {"access_token": access_token})
        return [_parse_account(raw) for raw in data.get("accounts", [])]

    async def get_item(self, access_token: str) -> Dict[str, Any]:
        data = await self._post("/item/get", {"access_token": access_token})
        return data.get("item", {})

    async def sync_transactions(self, access_token: str, cursor: Optional[str] = None) -> SyncPage:
        """
        Fetch one page of transaction changes.

        The cursor is forwarded untouched; it is omitted on the first sync.
        """
        payload: Dict[str, Any] = {"access_token": access_token, "count": SYNC_PAGE_SIZE}
        if cursor:
            payload["cursor"] = cursor
        data = await self._post("/transactions/sync", payload)
        try:
            return SyncPage(
                added=[_parse_transaction(t) for t in data.get("added", [])],
                modified=[_parse_transaction(t) for t in data.get("modified", [])],
                removed=[r["transaction_id"] for r in data.get("removed", [])],
                next_cursor=data["next_cursor"],
                has_more=bool(data.get("has_more", False)),
            )
        except (KeyError, ValueError, TypeError) as e:
            raise PlaidAPIError(f"Invalid transaction data from Plaid: {e}") from e

    async def authorize_transfer(
        self,
        access_token: str,
        account_id: str,
        amount: Decimal,
        transfer_speed: TransferSpeed,
        legal_name: str,
    ) -> Dict[str, Any]:
        """Credit transfer authorization; RTP for instant, same-day ACH otherwise"""
        network = "rtp" if transfer_speed == TransferSpeed.INSTANT else "ach"
        payload: Dict[str, Any] = {
            "access_token": access_token,
            "account_id": account_id,
            "type": "credit",
            "network": network,
            "amount": f"{amount:.2f}",
            "user": {"legal_name": legal_name},
        }
        if network == "ach":
            payload["ach_class"] = "ppd"
        data = await self._post("/transfer/authorization/create", payload)
        return data["authorization"]

    async def create_transfer(
        self,
        access_token: str,
        account_id: str,
        authorization_id: str,
        description: str,
    ) -> Dict[str, Any]:
        data = await self._post(
            "/transfer/create",
            {
                "access_token": access_token,
                "account_id": account_id,
                "authorization_id": authorization_id,
                # Plaid caps transfer descriptions at 15 characters
                "description": description[:15],
            },
        )
        return data["transfer"]

    async def create_asset_report(
        self,
        access_tokens: List[str],
        days_requested: int,
        webhook: Optional[str] = None,
    ) -> Dict[str, str]:
        payload: Dict[str, Any] = {"access_tokens": access_tokens, "days_requested": days_requested}
        if webhook:
            payload["options"] = {"webhook": webhook}
        data = await self._post("/asset_report/create", payload)
        return {"asset_report_token": data["asset_report_token"], "asset_report_id": data["asset_report_id"]}
