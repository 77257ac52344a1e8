import json
from types import SimpleNamespace

import pytest
from openai import OpenAIError

from referral_hub.services import openai_service


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.calls = 0

    async def create(self, **kwargs):
        self.calls += 1
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def fake_client(**kwargs):
    completions = FakeCompletions(**kwargs)
    return SimpleNamespace(chat=SimpleNamespace(completions=completions)), completions


BUSINESS = {"businessName": "Corner Shop", "industry": "Retail"}
CAMPAIGN = {"name": "Spring", "referrerReward": {"description": "$10 off"}}
CUSTOMER = {"name": "Rita"}
LINK = "http://localhost:3000/refer/abc/def?code=ABC123"


async def test_without_api_key_uses_fallback(monkeypatch):
    monkeypatch.setattr(openai_service, "client", None)
    out = await openai_service.generate_sharing_suggestions(BUSINESS, CAMPAIGN, CUSTOMER, LINK)
    assert set(out) == {"sms", "email", "facebook", "twitter", "whatsapp"}
    assert LINK in out["sms"]
    assert "Corner Shop" in out["email"]["subject"]


async def test_model_error_uses_fallback(monkeypatch):
    client, completions = fake_client(error=OpenAIError("rate limited"))
    monkeypatch.setattr(openai_service, "client", client)
    out = await openai_service.generate_follow_up_message(BUSINESS, CAMPAIGN, {"referee": {"name": "Alice"}})
    assert completions.calls == 1
    assert out == openai_service.fallback_follow_up("Corner Shop", "Alice")


async def test_malformed_json_uses_fallback(monkeypatch):
    client, _ = fake_client(content="not json")
    monkeypatch.setattr(openai_service, "client", client)
    out = await openai_service.generate_follow_up_message(BUSINESS, None, {})
    assert out["subject"] == "A friendly reminder about your referral invitation"


async def test_partial_model_answer_is_merged_over_fallback(monkeypatch):
    client, _ = fake_client(content=json.dumps({"sms": "Join me!", "twitter": "", "email": {"subject": "Hi"}}))
    monkeypatch.setattr(openai_service, "client", client)
    out = await openai_service.generate_sharing_suggestions(BUSINESS, CAMPAIGN, CUSTOMER, LINK)
    fallback = openai_service.fallback_sharing_suggestions(LINK, "Corner Shop")
    assert out["sms"] == "Join me!"
    assert out["twitter"] == fallback["twitter"]
    assert out["email"] == fallback["email"]


@pytest.mark.parametrize("kind", ["initial", "reminder", "final", "bogus"])
async def test_follow_up_answer_is_used(monkeypatch, kind):
    client, _ = fake_client(content=json.dumps({"subject": "Still there?", "body": "Offer ends soon."}))
    monkeypatch.setattr(openai_service, "client", client)
    out = await openai_service.generate_follow_up_message(BUSINESS, CAMPAIGN, {}, follow_up_type=kind)
    assert out == {"subject": "Still there?", "body": "Offer ends soon."}
