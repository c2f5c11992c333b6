"""
Tests for the template passthrough endpoints.

Tests cover:
- Listing templates relays the Cloud API response
- Creating a template builds the BODY component
- Validation errors are rejected before any Cloud API call
- Upstream errors are relayed with 500
"""

import pytest

from conftest import FakeResponse


TEMPLATES_URL = "https://graph.facebook.com/v20.0/9876543210/message_templates"


class TestListTemplates:

    def test_list_relays_response(self, client, fake_session):
        templates = {
            "data": [{"name": "hello_world", "language": "en_US", "status": "APPROVED"}],
            "paging": {"cursors": {"before": "a", "after": "b"}},
        }
        fake_session.response = FakeResponse(200, templates)

        response = client.get("/chat/api_get_templates/")

        assert response.status_code == 200
        assert response.json() == templates
        call = fake_session.calls[0]
        assert call["method"] == "GET"
        assert call["url"] == TEMPLATES_URL
        assert call["headers"] == {"Authorization": "Bearer test-token"}

    def test_list_upstream_error(self, client, fake_session):
        error = {"error": {"message": "Invalid OAuth access token.", "code": 190}}
        fake_session.response = FakeResponse(401, error)

        response = client.get("/chat/api_get_templates/")

        assert response.status_code == 500
        assert response.json() == error

    def test_list_network_error(self, client, fake_session, network_error):
        fake_session.error = network_error

        response = client.get("/chat/api_get_templates/")

        assert response.status_code == 500
        assert response.json() == {"message": "connection refused"}


class TestCreateTemplate:

    def test_create_forwards_body(self, client, fake_session):
        fake_session.response = FakeResponse(200, {"id": "594425479261596", "status": "PENDING", "category": "MARKETING"})

        response = client.post(
            "/chat/api_create_template/",
            json={"name": "spring_sale", "category": "MARKETING", "bodyText": "Sale starts today!"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "PENDING"
        call = fake_session.calls[0]
        assert call["method"] == "POST"
        assert call["url"] == TEMPLATES_URL
        assert call["json"] == {
            "name": "spring_sale",
            "language": "en_US",
            "category": "MARKETING",
            "components": [{"type": "BODY", "text": "Sale starts today!"}],
        }

    def test_create_with_language(self, client, fake_session):
        fake_session.response = FakeResponse(200, {"id": "1"})

        client.post(
            "/chat/api_create_template/",
            json={"name": "promo", "category": "MARKETING", "bodyText": "Hola", "language": "es"},
        )

        assert fake_session.calls[0]["json"]["language"] == "es"

    @pytest.mark.parametrize(
        "body",
        [
            {"category": "MARKETING", "bodyText": "x"},
            {"name": "promo", "bodyText": "x"},
            {"name": "promo", "category": "MARKETING"},
        ],
    )
    def test_missing_fields_rejected(self, client, fake_session, body):
        response = client.post("/chat/api_create_template/", json=body)

        assert response.status_code == 400
        assert response.json() == {"error": "Template name, category, and bodyText are required."}
        assert fake_session.calls == []

    def test_create_upstream_error(self, client, fake_session):
        error = {"error": {"message": "Template name already exists", "code": 100}}
        fake_session.response = FakeResponse(400, error)

        response = client.post(
            "/chat/api_create_template/",
            json={"name": "dup", "category": "UTILITY", "bodyText": "x"},
        )

        assert response.status_code == 500
        assert response.json() == error

    def test_numeric_fields_accepted(self, client, fake_session):
        fake_session.response = FakeResponse(200, {"id": "2"})

        response = client.post(
            "/chat/api_create_template/",
            json={"name": "promo", "category": "MARKETING", "bodyText": 2025},
        )

        assert response.status_code == 200
        assert fake_session.calls[0]["json"]["components"] == [{"type": "BODY", "text": "2025"}]
