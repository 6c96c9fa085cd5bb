"""
gateway.py — Monobank acquiring API client.

Operations (base URL settings.monobank_api_url, X-Token auth):
  create_invoice()      POST /invoice/create
  get_invoice_status()  GET  /invoice/status?invoiceId=...
  cancel_invoice()      POST /invoice/cancel

Error contract — no retries, every non-2xx is a hard failure:
  HTTP 400 / 404 / 422                     → GatewayValidationError  (bad request / unknown invoice)
  any other non-2xx, transport, timeout,
  missing token                            → GatewayUnavailableError (configuration / quota / outage)
"""
import logging
from typing import Any, Optional

import httpx

from astroline.agents.payment_agent.plans import CURRENCY_UAH
from astroline.agents.payment_agent.schemas import InvoiceCreated, InvoiceStatus, parse_status

logger = logging.getLogger(__name__)

VALIDATION_STATUS_CODES = frozenset({400, 404, 422})


class GatewayError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class GatewayValidationError(GatewayError):
    """The gateway rejected the request itself."""


class GatewayUnavailableError(GatewayError):
    """The gateway could not be reached or is not usable right now."""


class MonobankClient:

    def __init__(
        self,
        token: str,
        base_url: str,
        timeout: float,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self._token)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        if not self._token:
            raise GatewayUnavailableError("MONOBANK_TOKEN is not configured")

        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                headers={"X-Token": self._token},
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, json=json, params=params)
        except httpx.TimeoutException as exc:
            logger.error("Monobank %s %s timed out after %.1fs", method, path, self._timeout)
            raise GatewayUnavailableError(f"Gateway timed out after {self._timeout}s") from exc
        except httpx.HTTPError as exc:
            logger.error("Monobank %s %s transport error: %s", method, path, exc)
            raise GatewayUnavailableError(f"Gateway transport error: {exc}") from exc

        if response.status_code in VALIDATION_STATUS_CODES:
            logger.warning("Monobank %s %s rejected: HTTP %d", method, path, response.status_code)
            raise GatewayValidationError(
                f"Gateway rejected request: HTTP {response.status_code} {response.text[:200]}",
                status_code=response.status_code,
            )
        if not response.is_success:
            logger.error("Monobank %s %s failed: HTTP %d", method, path, response.status_code)
            raise GatewayUnavailableError(
                f"Gateway error: HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as exc:
            raise GatewayUnavailableError("Gateway returned a non-JSON body") from exc

    async def create_invoice(
        self,
        amount: int,
        reference: str,
        destination: str,
        redirect_url: str,
        webhook_url: str,
        validity: int,
        basket: Optional[list[dict]] = None,
        ccy: int = CURRENCY_UAH,
    ) -> InvoiceCreated:
        merchant_info: dict[str, Any] = {"reference": reference, "destination": destination}
        if basket:
            merchant_info["basketOrder"] = basket
        data = await self._request("POST", "/invoice/create", json={
            "amount": amount,
            "ccy": ccy,
            "merchantPaymInfo": merchant_info,
            "redirectUrl": redirect_url,
            "webHookUrl": webhook_url,
            "validity": validity,
            "paymentType": "debit",
        })
        try:
            created = InvoiceCreated(invoice_id=data["invoiceId"], page_url=data["pageUrl"])
        except KeyError as exc:
            raise GatewayUnavailableError(f"Gateway response missing {exc}") from exc
        logger.info("Invoice created reference=%s invoice_id=%s", reference, created.invoice_id)
        return created

    async def get_invoice_status(self, invoice_id: str) -> InvoiceStatus:
        data = await self._request("GET", "/invoice/status", params={"invoiceId": invoice_id})
        raw_status = str(data.get("status") or "")
        return InvoiceStatus(
            invoice_id=data.get("invoiceId") or invoice_id,
            status=parse_status(raw_status),
            raw_status=raw_status,
            amount=data.get("amount"),
            ccy=data.get("ccy"),
            reference=data.get("reference"),
            failure_reason=data.get("failureReason"),
        )

    async def cancel_invoice(
        self,
        invoice_id: str,
        ext_ref: Optional[str] = None,
        amount: Optional[int] = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"invoiceId": invoice_id}
        if ext_ref:
            body["extRef"] = ext_ref
        if amount:
            body["amount"] = amount
        data = await self._request("POST", "/invoice/cancel", json=body)
        logger.info("Invoice cancel requested invoice_id=%s status=%s", invoice_id, data.get("status"))
        return data
