"""
Tests for the one-shot campaign run: request validation and the counters
produced by a full run against stubbed services.
"""
import pytest

from leadflow.errors import PreconditionError, UpstreamError
from leadflow.models.instantly import BulkSendResult
from leadflow.services import campaign_run
from leadflow.services.apollo_client import FetchContactsResult
from leadflow.services.campaign_run import CampaignRunRequest, run_campaign, validate_run_request
from tests.conftest import fake_contact, run


def _body(**overrides):
    body = {
        "apollo_filters": {"person_titles": ["CEO"]},
        "instantly_campaign_id": " camp_1 ",
        "daily_limit": 10,
        "test_mode": False,
    }
    body.update(overrides)
    return body


class TestValidateRunRequest:
    def test_valid_request(self):
        request = validate_run_request(_body())

        assert request.instantly_campaign_id == "camp_1"
        assert request.daily_limit == 10
        assert request.test_email is None

    @pytest.mark.parametrize(
        "body, message",
        [
            (None, "Request body is required"),
            (_body(apollo_filters=None), "apollo_filters is required"),
            (_body(instantly_campaign_id=None), "instantly_campaign_id is required"),
            (_body(instantly_campaign_id="   "), "instantly_campaign_id cannot be empty"),
            (_body(daily_limit=0), "daily_limit must be a positive number"),
            (_body(daily_limit="10"), "daily_limit must be a positive number"),
            (_body(daily_limit=True), "daily_limit must be a positive number"),
            (_body(daily_limit=1001), "daily_limit cannot exceed 1000"),
            (_body(test_mode="yes"), "test_mode must be a boolean"),
            (_body(test_mode=True), "test_email is required when test_mode is true"),
            (_body(test_mode=True, test_email="nope"), "test_email must be a valid email address"),
        ],
    )
    def test_rejections(self, body, message):
        with pytest.raises(PreconditionError, match=message):
            validate_run_request(body)

    def test_test_mode_email_is_trimmed(self):
        request = validate_run_request(_body(test_mode=True, test_email=" qa@me.com "))
        assert request.test_email == "qa@me.com"


class Stubs:
    def __init__(self, monkeypatch, contacts, existing=(), fetch_error=None):
        self.contacts = contacts
        self.existing = set(existing)
        self.fetch_error = fetch_error
        self.lookups = []
        self.sent = []
        monkeypatch.setattr(campaign_run, "fetch_contacts", self.fetch)
        monkeypatch.setattr(campaign_run, "get_leads_batch", self.lookup)
        monkeypatch.setattr(campaign_run, "send_bulk_to_instantly", self.send)

    async def fetch(self, filters, daily_limit):
        return FetchContactsResult(contacts=self.contacts, total_fetched=len(self.contacts), error=self.fetch_error)

    async def lookup(self, emails, campaign_id=None):
        self.lookups.append(emails)
        return self.existing & set(emails)

    async def send(self, contacts, campaign_id, test_mode, test_email=None):
        self.sent.append((contacts, test_mode, test_email))
        return BulkSendResult(total_processed=len(contacts), successful=len(contacts))


def _request(**overrides):
    return CampaignRunRequest(**{**validate_run_request(_body()).model_dump(), **overrides})


class TestRunCampaign:
    def test_full_run_counters(self, monkeypatch):
        contacts = [fake_contact(i) for i in range(6)] + [fake_contact(9, status="unverified")]
        stubs = Stubs(monkeypatch, contacts, existing={"person0@example0.com"})

        response = run(run_campaign(_request()))

        assert response.fetched == 7
        assert response.verified == 6
        assert response.skipped_duplicates == 1
        assert response.sent == 5
        assert response.test_sent == 0
        assert response.errors == 0
        assert len(stubs.sent[0][0]) == 5

    def test_test_mode_skips_dedupe(self, monkeypatch):
        stubs = Stubs(monkeypatch, [fake_contact(i) for i in range(3)], existing={"person0@example0.com"})

        response = run(run_campaign(_request(test_mode=True, test_email="qa@me.com")))

        assert stubs.lookups == []
        assert response.test_sent == 3
        assert response.sent == 0
        assert stubs.sent[0][2] == "qa@me.com"

    def test_apollo_error_raises_with_details(self, monkeypatch):
        Stubs(monkeypatch, [], fetch_error="Apollo API error (401): invalid key")

        with pytest.raises(UpstreamError) as exc_info:
            run(run_campaign(_request()))

        assert str(exc_info.value) == "Failed to fetch contacts from Apollo"
        assert exc_info.value.details == "Apollo API error (401): invalid key"

    def test_nothing_fetched_returns_zeros(self, monkeypatch):
        stubs = Stubs(monkeypatch, [])

        response = run(run_campaign(_request()))

        assert response == campaign_run.CampaignRunResponse()
        assert stubs.sent == []

    def test_all_duplicates_sends_nothing(self, monkeypatch):
        contacts = [fake_contact(i) for i in range(2)]
        stubs = Stubs(monkeypatch, contacts, existing={c.email for c in contacts})

        response = run(run_campaign(_request()))

        assert response.skipped_duplicates == 2
        assert stubs.sent == []
