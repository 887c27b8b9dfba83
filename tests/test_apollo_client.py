"""
Tests for the Apollo contact source: pagination, truncation to the daily
limit, email reveal and partial-failure reporting.
"""
import httpx
import pytest

from leadflow.services.apollo_client import MAX_PER_PAGE, fetch_contacts, reveal_emails
from tests.conftest import fake_contact, mock_client, request_json, run


def _person(i, email=True, status="verified"):
    return {
        "id": f"p{i}",
        "first_name": f"First{i}",
        "last_name": f"Last{i}",
        "email": f"p{i}@corp.com" if email else None,
        "email_status": status,
        "title": "CTO",
        "organization": {"id": f"o{i}", "name": f"Corp {i}"},
    }


class FakeApollo:
    """Serves search pages from a fixed population and answers bulk_match."""

    def __init__(self, population, total_pages=None, fail_on_page=None, reveal_status=200):
        self.population = population
        self.total_pages = total_pages
        self.fail_on_page = fail_on_page
        self.reveal_status = reveal_status
        self.search_bodies = []
        self.match_calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        assert request.headers["x-api-key"] == "test_apollo_key"
        if request.url.path.endswith("/mixed_people/api_search"):
            body = request_json(request)
            self.search_bodies.append(body)
            if body["page"] == self.fail_on_page:
                return httpx.Response(500, text="boom")
            start = (body["page"] - 1) * MAX_PER_PAGE
            people = self.population[start:start + body["per_page"]]
            data = {"people": people}
            if self.total_pages is not None:
                data["pagination"] = {"total_pages": self.total_pages}
            return httpx.Response(200, json=data)
        if request.url.path.endswith("/people/bulk_match"):
            body = request_json(request)
            self.match_calls.append((dict(request.url.params), body))
            if self.reveal_status != 200:
                return httpx.Response(self.reveal_status, text="rate limited")
            matches = [
                {"id": d["id"], "email": f"{d['id']}@revealed.com", "email_status": "verified"}
                for d in body["details"]
            ]
            return httpx.Response(200, json={"matches": matches + [None]})
        return httpx.Response(404)


def _fetch(fake, filters=None, daily_limit=50):
    return run(fetch_contacts(
        filters or {"person_titles": ["CTO"]},
        daily_limit,
        client=mock_client(fake),
        reveal_delay=0,
    ))


class TestPagination:
    def test_stops_at_daily_limit_across_pages(self):
        fake = FakeApollo([_person(i) for i in range(300)], total_pages=3)

        result = _fetch(fake, daily_limit=150)

        assert result.error is None
        assert len(result.contacts) == 150
        assert result.total_fetched == 150
        assert [b["per_page"] for b in fake.search_bodies] == [100, 50]
        assert [b["page"] for b in fake.search_bodies] == [1, 2]

    def test_filters_are_sent_with_every_page(self):
        fake = FakeApollo([_person(i) for i in range(200)], total_pages=2)

        _fetch(fake, filters={"person_titles": ["CTO"], "q_keywords": "saas"}, daily_limit=200)

        for body in fake.search_bodies:
            assert body["person_titles"] == ["CTO"]
            assert body["q_keywords"] == "saas"

    def test_stops_when_last_page_reported(self):
        fake = FakeApollo([_person(i) for i in range(120)], total_pages=1)

        result = _fetch(fake, daily_limit=500)

        assert len(fake.search_bodies) == 1
        assert len(result.contacts) == 100

    def test_short_page_ends_pagination(self):
        fake = FakeApollo([_person(i) for i in range(130)])

        result = _fetch(fake, daily_limit=500)

        assert len(result.contacts) == 130
        assert len(fake.search_bodies) == 2

    def test_empty_result(self):
        fake = FakeApollo([])

        result = _fetch(fake)

        assert result.contacts == []
        assert result.total_fetched == 0
        assert result.error is None

    def test_small_limit_requests_small_page(self):
        fake = FakeApollo([_person(i) for i in range(100)], total_pages=5)

        result = _fetch(fake, daily_limit=7)

        assert len(result.contacts) == 7
        assert fake.search_bodies[0]["per_page"] == 7


class TestPartialFailure:
    def test_error_mid_way_keeps_accumulated_contacts(self):
        fake = FakeApollo([_person(i) for i in range(300)], total_pages=3, fail_on_page=2)

        result = _fetch(fake, daily_limit=300)

        assert len(result.contacts) == 100
        assert result.total_fetched == 100
        assert "Apollo API error (500)" in result.error

    def test_error_on_first_page(self):
        fake = FakeApollo([_person(i) for i in range(10)], fail_on_page=1)

        result = _fetch(fake)

        assert result.contacts == []
        assert result.error

    def test_missing_key_reports_error_without_calling(self, no_credentials):
        fake = FakeApollo([_person(1)])

        result = _fetch(fake)

        assert result.error == "Apollo API key not configured"
        assert fake.search_bodies == []


class TestRevealEmails:
    def test_fetch_reveals_missing_emails(self):
        population = [_person(i, email=(i % 2 == 0)) for i in range(20)]
        fake = FakeApollo(population, total_pages=1)

        result = _fetch(fake, daily_limit=20)

        assert all(c.email for c in result.contacts)
        assert result.contacts[1].email == "p1@revealed.com"
        assert result.contacts[0].email == "p0@corp.com"
        assert len(fake.match_calls) == 1

    def test_batches_of_ten_with_reveal_param(self):
        contacts = [fake_contact(i, email=None, status=None) for i in range(25)]
        fake = FakeApollo([])

        merged = run(reveal_emails(contacts, "test_apollo_key", client=mock_client(fake), batch_delay=0))

        assert [len(body["details"]) for _, body in fake.match_calls] == [10, 10, 5]
        assert all(params["reveal_personal_emails"] == "true" for params, _ in fake.match_calls)
        assert [c.id for c in merged] == [c.id for c in contacts]
        assert all(c.email_status == "verified" for c in merged)

    def test_input_is_not_mutated(self):
        contacts = [fake_contact(1, email=None, status=None)]
        fake = FakeApollo([])

        merged = run(reveal_emails(contacts, "test_apollo_key", client=mock_client(fake), batch_delay=0))

        assert contacts[0].email is None
        assert merged[0].email == "apollo_1@revealed.com"

    def test_failed_batch_leaves_contacts_without_email(self):
        contacts = [fake_contact(i, email=None, status=None) for i in range(3)]
        fake = FakeApollo([], reveal_status=429)

        merged = run(reveal_emails(contacts, "test_apollo_key", client=mock_client(fake), batch_delay=0))

        assert [c.email for c in merged] == [None, None, None]

    def test_nothing_to_reveal_makes_no_call(self):
        contacts = [fake_contact(i) for i in range(3)]
        fake = FakeApollo([])

        merged = run(reveal_emails(contacts, "test_apollo_key", client=mock_client(fake), batch_delay=0))

        assert merged == contacts
        assert fake.match_calls == []


@pytest.mark.parametrize("daily_limit", [1, 99, 100, 101, 250])
def test_never_returns_more_than_daily_limit(daily_limit):
    fake = FakeApollo([_person(i) for i in range(400)], total_pages=4)

    result = _fetch(fake, daily_limit=daily_limit)

    assert len(result.contacts) == daily_limit
