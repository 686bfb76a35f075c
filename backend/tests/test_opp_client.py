import json

import httpx
import pytest
from fastapi import HTTPException

from creator_platform.services.opp import CreateBankAccountRequest, CreateMerchantRequest, OppClient

MERCHANT = {
    "uid": "mer_123",
    "object": "merchant",
    "status": "pending",
    "type": "business",
    "coc_nr": "12345678",
    "compliance": {
        "level": 100,
        "status": "unverified",
        "overview_url": "https://sandbox.onlinebetaalplatform.nl/en/overview/mer_123",
        "requirements": [
            {
                "type": "bank_account.verification.required",
                "status": "unverified",
                "object_type": "bank_account",
                "object_uid": "ban_123",
            },
            {"type": "ubo.verification.required", "status": "pending"},
        ],
    },
}

BANK_ACCOUNT = {"uid": "ban_123", "status": "new", "verification_url": "https://sandbox.example/verify/ban_123"}


def _client(handler):
    return OppClient(
        "https://api-sandbox.onlinebetaalplatform.nl/v1",
        "test-api-key",
        transport=httpx.MockTransport(handler),
    )


def _merchant_request(**overrides):
    fields = {
        "coc_nr": "12345678",
        "country": "nld",
        "emailaddress": "casey@example.com",
        "phone": "+31612345678",
        "notify_url": "https://api.example.test/creator/onboard/notify",
    }
    fields.update(overrides)
    return CreateMerchantRequest(**fields)


def test_create_merchant_posts_business_merchant():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=MERCHANT)

    merchant = _client(handler).create_merchant(_merchant_request())

    request = seen[0]
    assert request.method == "POST"
    assert request.url.path == "/v1/merchants"
    assert request.headers["Authorization"] == "Bearer test-api-key"
    body = json.loads(request.content)
    assert body["type"] == "business"
    assert body["coc_nr"] == "12345678"
    assert merchant.uid == "mer_123"
    assert merchant.compliance.overview_url.endswith("/mer_123")


def test_create_merchant_reports_missing_fields_without_calling_provider():
    def handler(request):
        raise AssertionError("provider must not be called")

    with pytest.raises(HTTPException) as excinfo:
        _client(handler).create_merchant(_merchant_request(coc_nr="", phone=None))
    assert excinfo.value.status_code == 400
    assert excinfo.value.detail == "Missing required fields: coc_nr, phone"


def test_provider_error_message_is_surfaced():
    def handler(request):
        return httpx.Response(400, json={"error": {"message": "Invalid coc_nr"}})

    with pytest.raises(HTTPException) as excinfo:
        _client(handler).create_merchant(_merchant_request())
    assert excinfo.value.status_code == 400
    assert excinfo.value.detail == "OPP API Error: Invalid coc_nr"


def test_provider_failure_without_message_is_internal_error():
    def handler(request):
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(HTTPException) as excinfo:
        _client(handler).create_bank_account(
            "mer_123", CreateBankAccountRequest(return_url="https://r.example", notify_url="https://n.example")
        )
    assert excinfo.value.status_code == 500
    assert excinfo.value.detail == "Failed to create bank account"


def test_transport_error_is_internal_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(HTTPException) as excinfo:
        _client(handler).get_merchant("mer_123")
    assert excinfo.value.status_code == 500
    assert excinfo.value.detail == "Failed to retrieve merchant"


def test_unexpected_response_shape_is_internal_error():
    def handler(request):
        return httpx.Response(200, json={"uid": "mer_123"})

    with pytest.raises(HTTPException) as excinfo:
        _client(handler).get_merchant("mer_123")
    assert excinfo.value.status_code == 500


def test_create_bank_account_path_and_body():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=BANK_ACCOUNT)

    bank_account = _client(handler).create_bank_account(
        "mer_123",
        CreateBankAccountRequest(
            return_url="https://api.example.test/creator/onboard/return?userId=u1",
            notify_url="https://api.example.test/creator/onboard/notify",
        ),
    )
    assert seen[0].url.path == "/v1/merchants/mer_123/bank_accounts"
    assert json.loads(seen[0].content)["return_url"].endswith("userId=u1")
    assert bank_account.uid == "ban_123"


def test_get_merchant_and_find_requirement():
    def handler(request):
        assert request.method == "GET"
        assert request.url.path == "/v1/merchants/mer_123"
        return httpx.Response(200, json=MERCHANT)

    merchant = _client(handler).get_merchant("mer_123")
    bank = merchant.find_requirement(object_type="bank_account")
    assert bank.status == "unverified"
    assert merchant.find_requirement(requirement_type="ubo.verification.required").status == "pending"
    assert merchant.find_requirement(object_type="contact") is None


def test_get_bank_account():
    def handler(request):
        assert request.url.path == "/v1/merchants/mer_123/bank_accounts/ban_123"
        return httpx.Response(200, json=BANK_ACCOUNT)

    assert _client(handler).get_bank_account("mer_123", "ban_123").status == "new"


def test_update_merchant_posts_changes():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={**MERCHANT, "status": "terminated"})

    merchant = _client(handler).update_merchant("mer_123", {"status": "terminated"})
    assert seen[0].method == "POST"
    assert seen[0].url.path == "/v1/merchants/mer_123"
    assert json.loads(seen[0].content) == {"status": "terminated"}
    assert merchant.status == "terminated"


def test_update_merchant_requires_uid():
    with pytest.raises(HTTPException) as excinfo:
        _client(lambda request: httpx.Response(200, json=MERCHANT)).update_merchant("", {"status": "terminated"})
    assert excinfo.value.status_code == 400
    assert excinfo.value.detail == "Merchant UID is required"


@pytest.mark.parametrize("status_code", [401, 404])
def test_update_merchant_hides_provider_messages(status_code):
    def handler(request):
        return httpx.Response(status_code, json={"error": {"message": "nope"}})

    with pytest.raises(HTTPException) as excinfo:
        _client(handler).update_merchant("mer_123", {"emailaddress": "new@example.com"})
    assert excinfo.value.status_code == 500
    assert excinfo.value.detail == "Failed to update merchant"
