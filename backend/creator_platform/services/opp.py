"""Client for the Online Payment Platform (OPP) merchant API.

Only the merchant and bank-account endpoints used by creator onboarding
are wrapped. Provider error bodies look like
``{"error": {"type": ..., "message": ..., "code": ...}}``; those are
surfaced to callers as ``400 OPP API Error: <message>``. Anything else
(timeouts, 5xx without an error body, unparseable JSON) becomes a 500
carrying an operation-specific message.
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Any, Dict, List, Optional

import httpx
from fastapi import HTTPException, status
from pydantic import BaseModel, ValidationError

from ..config import get_settings

logger = logging.getLogger(__name__)


class ComplianceRequirement(BaseModel):
    type: str
    status: str
    object_type: Optional[str] = None
    object_uid: Optional[str] = None
    object_url: Optional[str] = None
    object_redirect_url: Optional[str] = None


class Compliance(BaseModel):
    level: Optional[int] = None
    status: str
    overview_url: Optional[str] = None
    requirements: List[ComplianceRequirement] = []


class Merchant(BaseModel):
    uid: str
    status: str
    compliance: Compliance
    type: Optional[str] = None
    coc_nr: Optional[str] = None
    phone: Optional[str] = None
    country: Optional[str] = None
    notify_url: Optional[str] = None
    livemode: Optional[bool] = None
    created: Optional[int] = None
    updated: Optional[int] = None

    def find_requirement(
        self, *, object_type: Optional[str] = None, requirement_type: Optional[str] = None
    ) -> Optional[ComplianceRequirement]:
        for requirement in self.compliance.requirements:
            if object_type is not None and requirement.object_type != object_type:
                continue
            if requirement_type is not None and requirement.type != requirement_type:
                continue
            return requirement
        return None


class BankAccount(BaseModel):
    uid: str
    status: str
    verification_url: Optional[str] = None
    return_url: Optional[str] = None
    notify_url: Optional[str] = None
    is_default: Optional[bool] = None
    verified: Optional[int] = None


class CreateMerchantRequest(BaseModel):
    type: str = "business"
    coc_nr: str
    country: str
    emailaddress: str
    phone: Optional[str] = None
    notify_url: str


class CreateBankAccountRequest(BaseModel):
    return_url: str
    notify_url: str


def _provider_error_message(response: httpx.Response) -> Optional[str]:
    try:
        body = response.json()
    except ValueError:
        return None
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"].get("message")
    return None


def opp_country(country_code: str) -> str:
    """OPP expects lower-case ISO 3166-1 alpha-3 country codes."""
    return country_code.strip().lower()


def _require(fields: Dict[str, Any]) -> None:
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing required fields: {', '.join(missing)}",
        )


class OppClient:
    """Synchronous OPP API client authenticated with a bearer API key."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._client = httpx.Client(
            base_url=base_url.rstrip("/") + "/",
            headers={
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        path: str,
        failure_detail: str,
        payload: Optional[Dict[str, Any]] = None,
        surface_provider_errors: bool = True,
    ) -> Dict[str, Any]:
        try:
            response = self._client.request(method, path, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            message = _provider_error_message(exc.response)
            logger.error(
                "OPP %s %s returned %s: %s",
                method,
                path,
                exc.response.status_code,
                message or exc.response.text,
            )
            if surface_provider_errors and message:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST, detail=f"OPP API Error: {message}"
                ) from exc
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=failure_detail) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("OPP %s %s failed: %s", method, path, exc)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=failure_detail) from exc

    def _parse(self, model: type, data: Dict[str, Any], failure_detail: str):
        try:
            return model.model_validate(data)
        except ValidationError as exc:
            logger.error("Unexpected OPP response for %s: %s", model.__name__, exc)
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=failure_detail) from exc

    def create_merchant(self, request: CreateMerchantRequest) -> Merchant:
        _require(
            {
                "type": request.type,
                "coc_nr": request.coc_nr,
                "emailaddress": request.emailaddress,
                "country": request.country,
                "phone": request.phone,
                "notify_url": request.notify_url,
            }
        )
        detail = "Failed to create business merchant"
        data = self._request("POST", "merchants", detail, payload=request.model_dump(exclude_none=True))
        merchant = self._parse(Merchant, data, detail)
        logger.info("Created OPP merchant %s (status=%s)", merchant.uid, merchant.status)
        return merchant

    def create_bank_account(self, merchant_uid: str, request: CreateBankAccountRequest) -> BankAccount:
        _require(
            {
                "merchant_uid": merchant_uid,
                "return_url": request.return_url,
                "notify_url": request.notify_url,
            }
        )
        detail = "Failed to create bank account"
        data = self._request(
            "POST", f"merchants/{merchant_uid}/bank_accounts", detail, payload=request.model_dump()
        )
        bank_account = self._parse(BankAccount, data, detail)
        logger.info("Created OPP bank account %s for merchant %s", bank_account.uid, merchant_uid)
        return bank_account

    def update_merchant(self, merchant_uid: str, data: Dict[str, Any]) -> Merchant:
        if not merchant_uid:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Merchant UID is required")
        detail = "Failed to update merchant"
        try:
            body = self._request(
                "POST", f"merchants/{merchant_uid}", detail, payload=data, surface_provider_errors=False
            )
        except HTTPException as exc:
            cause = exc.__cause__
            if isinstance(cause, httpx.HTTPStatusError):
                if cause.response.status_code == status.HTTP_404_NOT_FOUND:
                    logger.warning("OPP merchant %s not found while updating", merchant_uid)
                elif cause.response.status_code == status.HTTP_401_UNAUTHORIZED:
                    logger.error("OPP rejected the API key while updating merchant %s", merchant_uid)
            raise
        return self._parse(Merchant, body, detail)

    def get_merchant(self, merchant_uid: str) -> Merchant:
        _require({"merchant_uid": merchant_uid})
        detail = "Failed to retrieve merchant"
        return self._parse(Merchant, self._request("GET", f"merchants/{merchant_uid}", detail), detail)

    def get_bank_account(self, merchant_uid: str, bank_account_uid: str) -> BankAccount:
        _require({"merchant_uid": merchant_uid, "bank_account_uid": bank_account_uid})
        detail = "Failed to retrieve bank account"
        data = self._request("GET", f"merchants/{merchant_uid}/bank_accounts/{bank_account_uid}", detail)
        return self._parse(BankAccount, data, detail)


@lru_cache
def get_opp_client() -> OppClient:
    """Return a process-wide OPP client built from settings."""
    settings = get_settings()
    return OppClient(settings.opp_api_base_url, settings.opp_api_key, timeout=settings.opp_timeout_seconds)
