import httpx
import pytest

from referral_hub.main import app


@pytest.fixture
async def api(db):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def _register(api, **body) -> dict:
    payload = {"name": "Owner", "email": "owner@shop.com", "password": "secret123", "role": "business", **body}
    resp = await api.post("/auth/register", json=payload)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def owner(api):
    body = await _register(api, businessName="Corner Shop")
    return body


@pytest.fixture
async def setup(api, owner):
    headers = _auth(owner["token"])
    campaign = await api.post(
        "/campaigns",
        headers=headers,
        json={
            "name": "Spring friends",
            "status": "active",
            "referrerReward": {"type": "fixed", "value": 10},
            "refereeReward": {"type": "fixed", "value": 5},
        },
    )
    assert campaign.status_code == 201, campaign.text
    customer = await api.post("/customers", headers=headers, json={"name": "Rita", "email": "rita@x.com"})
    assert customer.status_code == 201, customer.text
    return {
        "headers": headers,
        "campaign_id": campaign.json()["data"]["_id"],
        "customer_id": customer.json()["data"]["_id"],
    }


async def test_register_login_and_me(api, owner):
    assert owner["user"]["role"] == "business"
    assert owner["user"]["businessName"] == "Corner Shop"

    login = await api.post("/auth/login", json={"email": "OWNER@shop.com", "password": "secret123"})
    assert login.status_code == 200
    me = await api.get("/auth/me", headers=_auth(login.json()["token"]))
    assert me.json()["user"]["email"] == "owner@shop.com"

    dup = await api.post(
        "/auth/register", json={"name": "Other", "email": "owner@shop.com", "password": "secret123"}
    )
    assert dup.status_code == 409
    assert dup.json() == {"success": False, "error": "already_exists", "message": "User with this email already exists"}


async def test_bad_password_and_missing_token(api, owner):
    resp = await api.post("/auth/login", json={"email": "owner@shop.com", "password": "wrong-one"})
    assert resp.status_code == 401
    assert resp.json()["success"] is False

    resp = await api.get("/campaigns")
    assert resp.status_code in (401, 403)
    assert resp.json()["success"] is False


async def test_request_validation_error_body(api, owner):
    resp = await api.post("/campaigns", headers=_auth(owner["token"]), json={"name": "No rewards"})
    assert resp.status_code == 422
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "validation_error"


async def test_referral_lifecycle_over_http(api, setup):
    headers = setup["headers"]
    created = await api.post(
        "/referrals",
        headers=headers,
        json={
            "campaignId": setup["campaign_id"],
            "referrerId": setup["customer_id"],
            "refereeName": "Alice",
            "refereeEmail": "alice@x.com",
            "sharingMethod": "email",
        },
    )
    assert created.status_code == 201, created.text
    referral = created.json()["data"]
    assert referral["status"] == "pending"
    assert "facebook" in created.json()["shareableLinks"]

    # the landing page is public
    clicked = await api.put(f"/referrals/{referral['referralCode']}/click")
    assert clicked.status_code == 200
    assert clicked.json()["data"]["status"] == "clicked"

    converted = await api.post(f"/referrals/{referral['_id']}/convert", headers=headers)
    assert converted.status_code == 200, converted.text
    body = converted.json()
    assert body["referral"]["status"] == "converted"
    assert body["customer"]["email"] == "alice@x.com"
    assert sorted(r["value"] for r in body["rewards"]) == [5, 10]

    stats = await api.get(f"/campaigns/{setup['campaign_id']}/stats", headers=headers)
    data = stats.json()["data"]
    assert data["statistics"]["successfulReferrals"] == 1
    assert data["referralsByStatus"] == {"converted": 1}
    assert data["conversionRate"] == 100

    again = await api.put(f"/referrals/{referral['_id']}/status", headers=headers, json={"status": "pending"})
    assert again.status_code == 409
    assert again.json()["error"] == "invalid_transition"

    code = next(r["code"] for r in body["rewards"] if r["recipientType"] == "referrer")
    verified = await api.post("/rewards/verify", headers=headers, json={"code": code})
    assert verified.json()["data"]["value"] == 10


async def test_customer_claims_own_reward(api, setup, owner):
    headers = setup["headers"]
    created = await api.post(
        "/referrals",
        headers=headers,
        json={"campaignId": setup["campaign_id"], "referrerId": setup["customer_id"], "refereeName": "Bea"},
    )
    referral_id = created.json()["data"]["_id"]
    converted = await api.post(f"/referrals/{referral_id}/convert", headers=headers, json={"email": "bea@x.com"})
    reward = next(r for r in converted.json()["rewards"] if r["recipientType"] == "referrer")

    rita = await _register(
        api, name="Rita", email="rita@x.com", role="customer", businessId=owner["user"]["businessId"]
    )
    assert rita["user"]["customerId"] == setup["customer_id"]
    rita_headers = _auth(rita["token"])

    mine = await api.get("/rewards/customer", headers=rita_headers)
    assert mine.json()["count"] == 1

    claimed = await api.post(f"/rewards/{reward['_id']}/claim", headers=rita_headers)
    assert claimed.status_code == 200, claimed.text
    assert claimed.json()["data"]["status"] == "claimed"

    twice = await api.post(f"/rewards/{reward['_id']}/claim", headers=rita_headers)
    assert twice.status_code == 409
    assert twice.json()["error"] == "already_claimed"

    # customers cannot reach business routes
    forbidden = await api.get("/campaigns", headers=rita_headers)
    assert forbidden.status_code == 403


async def test_public_pages_and_public_conversion(api, setup, owner):
    business_id = owner["user"]["businessId"]
    profile = await api.get(f"/business/public/{business_id}")
    assert profile.json()["data"]["businessName"] == "Corner Shop"

    campaign = await api.get(f"/campaigns/{setup['campaign_id']}/public")
    assert campaign.json()["data"]["acceptingReferrals"] is True

    signup = await api.post(
        "/referrals/convert-public",
        json={"campaignId": setup["campaign_id"], "referrerId": setup["customer_id"], "name": "Cy", "email": "cy@x.com"},
    )
    assert signup.status_code == 201, signup.text
    assert signup.json()["referral"]["status"] == "converted"

    repeat = await api.post(
        "/referrals/convert-public",
        json={"campaignId": setup["campaign_id"], "referrerId": setup["customer_id"], "name": "Cy", "email": "cy@x.com"},
    )
    assert repeat.status_code == 400
    assert repeat.json()["error"] == "validation_error"


async def test_campaign_with_referrals_cannot_be_deleted(api, setup):
    headers = setup["headers"]
    code = await api.post(
        "/referrals/generate-code",
        headers=headers,
        json={"campaignId": setup["campaign_id"], "customerId": setup["customer_id"]},
    )
    assert code.status_code == 200
    assert len(code.json()["referralCode"]) == 6

    resp = await api.delete(f"/campaigns/{setup['campaign_id']}", headers=headers)
    assert resp.status_code == 400


async def test_analytics_endpoints(api, setup):
    headers = setup["headers"]
    first = await api.post("/analytics/generate", headers=headers, json={"period": "daily"})
    assert first.status_code == 201, first.text
    assert first.json()["data"]["customers"]["total"] == 1

    second = await api.post("/analytics/generate", headers=headers, json={"period": "daily"})
    assert second.status_code == 409

    history = await api.get("/analytics/history", headers=headers)
    assert history.json()["count"] == 1


async def test_ai_sharing_suggestions_without_key(monkeypatch, api, setup):
    from referral_hub.services import openai_service

    monkeypatch.setattr(openai_service, "client", None)
    resp = await api.post(
        "/ai/sharing-suggestions",
        headers=setup["headers"],
        json={"campaignId": setup["campaign_id"], "customerId": setup["customer_id"]},
    )
    assert resp.status_code == 200, resp.text
    suggestions = resp.json()["suggestions"]
    assert "/refer/" in suggestions["sms"]
    assert suggestions["email"]["subject"]
