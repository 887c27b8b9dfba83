"""
Tests for the bulk sender: payload shape, test-mode address substitution and
failure reporting.
"""
import httpx
import pytest

from leadflow.errors import PreconditionError
from leadflow.services.bulk_sender import build_lead, send_bulk_to_instantly
from tests.conftest import fake_validated, mock_client, request_json, run


class FakeBulkAdd:
    def __init__(self, response=None, status=200):
        self.response = response
        self.status = status
        self.payloads = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v2/leads/add"
        payload = request_json(request)
        self.payloads.append(payload)
        if self.status != 200:
            return httpx.Response(self.status, text="campaign not found")
        data = self.response if self.response is not None else {"uploaded": len(payload["leads"])}
        return httpx.Response(200, json=data)


def _send(fake, contacts, test_mode=False, test_email=None):
    return run(send_bulk_to_instantly(
        contacts, "camp_1", test_mode, test_email, client=mock_client(fake),
    ))


class TestBuildLead:
    def test_real_mode_uses_contact_address(self):
        lead = build_lead(fake_validated(1), test_mode=False)

        assert lead.email == "person1@example1.com"
        assert lead.company_name == "Acme"
        assert lead.custom_variables == {
            "source": "apollo",
            "first_name": "First1",
            "company": "Acme",
            "title": "CEO",
        }

    def test_test_mode_redirects_and_keeps_original(self):
        lead = build_lead(fake_validated(1), test_mode=True, test_email=" qa@me.com ")

        assert lead.email == "qa@me.com"
        assert lead.custom_variables["original_email"] == "person1@example1.com"

    def test_test_mode_without_test_email_is_refused(self):
        with pytest.raises(PreconditionError):
            build_lead(fake_validated(1), test_mode=True, test_email="  ")


class TestSendBulk:
    def test_uploads_whole_batch_in_one_call(self):
        fake = FakeBulkAdd()
        contacts = [fake_validated(i) for i in range(5)]

        result = _send(fake, contacts)

        assert len(fake.payloads) == 1
        payload = fake.payloads[0]
        assert payload["campaign_id"] == "camp_1"
        assert payload["skip_if_in_campaign"] is True
        assert [lead["email"] for lead in payload["leads"]] == [c.email for c in contacts]
        assert result.successful == 5
        assert result.failed == 0
        assert result.successful_contacts == contacts

    def test_test_mode_never_sends_real_addresses(self):
        fake = FakeBulkAdd()
        contacts = [fake_validated(i) for i in range(3)]

        result = _send(fake, contacts, test_mode=True, test_email="qa@me.com")

        leads = fake.payloads[0]["leads"]
        assert {lead["email"] for lead in leads} == {"qa@me.com"}
        assert [lead["custom_variables"]["original_email"] for lead in leads] == [c.email for c in contacts]
        assert result.successful == 3
        assert result.successful_contacts == []

    def test_test_mode_without_email_fails_before_network(self):
        fake = FakeBulkAdd()

        result = _send(fake, [fake_validated(1), fake_validated(2)], test_mode=True)

        assert fake.payloads == []
        assert result.successful == 0
        assert result.failed == 2
        assert result.errors[0].email == "all"

    def test_partial_upload_counts(self):
        fake = FakeBulkAdd(response={"uploaded": 2, "errors": [{"email": "person2@example2.com", "error": "bounced"}]})
        contacts = [fake_validated(i) for i in range(3)]

        result = _send(fake, contacts)

        assert result.successful == 2
        assert result.failed == 1
        assert result.successful_contacts == contacts[:2]
        assert result.errors[0].error == "bounced"

    def test_uploaded_count_is_clamped(self):
        fake = FakeBulkAdd(response={"uploaded": 10})

        result = _send(fake, [fake_validated(1)])

        assert result.successful == 1
        assert result.failed == 0

    def test_status_error_fails_everything(self):
        fake = FakeBulkAdd(response={"status": "error", "message": "Campaign paused"})

        result = _send(fake, [fake_validated(1), fake_validated(2)])

        assert result.successful == 0
        assert result.failed == 2
        assert result.errors[0].error == "Campaign paused"

    def test_http_error_fails_everything(self):
        fake = FakeBulkAdd(status=404)

        result = _send(fake, [fake_validated(1)])

        assert result.failed == 1
        assert "Instantly API error (404)" in result.errors[0].error

    def test_missing_key(self, no_credentials):
        fake = FakeBulkAdd()

        result = _send(fake, [fake_validated(1)])

        assert fake.payloads == []
        assert result.errors[0].error == "Instantly API key not configured"

    def test_empty_batch_is_a_noop(self):
        fake = FakeBulkAdd()

        result = _send(fake, [])

        assert fake.payloads == []
        assert result.total_processed == 0
