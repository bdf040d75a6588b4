#!/usr/bin/env python3
"""
Tests for POST /api/analyze-floor-plan.
"""

import base64
import json
from types import SimpleNamespace

import anthropic
import httpx
import pytest

from property_analyzer.analyser import FLOOR_PLAN_PROMPT, STUB_NOTE

ENDPOINT = "/api/analyze-floor-plan"
PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-floor-plan"


def upload(content_type="image/png", contents=PNG_BYTES):
    return {"image": ("plan.png", contents, content_type)}


class TestValidation:
    def test_missing_image(self, client):
        response = client.post(ENDPOINT, data={"other": "field"})
        assert response.status_code == 400
        assert response.json() == {"error": "No image provided"}

    def test_unsupported_type_names_supported_formats(self, client):
        response = client.post(ENDPOINT, files=upload(content_type="text/plain"))
        assert response.status_code == 400
        error = response.json()["error"]
        assert error.startswith("Invalid file type.")
        for media_type in ("image/jpeg", "image/png", "image/gif", "image/webp"):
            assert media_type in error

    def test_bmp_is_rejected(self, client):
        response = client.post(ENDPOINT, files=upload(content_type="image/bmp"))
        assert response.status_code == 400

    def test_validation_runs_before_analyser(self, client, fake_analyser):
        created = fake_analyser("{}")
        client.post(ENDPOINT, files=upload(content_type="text/plain"))
        assert created == []


class TestPlaceholder:
    def test_no_key_returns_placeholder(self, client):
        response = client.post(ENDPOINT, files=upload())
        assert response.status_code == 200
        assert response.json() == {"rooms": [], "totalArea": 0, "notes": STUB_NOTE}


class TestAnalysis:
    def test_well_formed_reply_is_passed_through(self, client, fake_analyser):
        reply = {
            "rooms": [
                {"name": "Kitchen", "dimensions": "12' x 10'", "area": 120, "features": ["Island", "Pantry"]},
                {"name": "WC", "dimensions": "5' x 4'", "area": 20, "features": []},
            ],
            "totalArea": 140,
            "notes": "Ground floor only",
            "extra": {"scale": "1:100"},
        }
        fake_analyser(json.dumps(reply))
        response = client.post(ENDPOINT, files=upload())
        assert response.status_code == 200
        assert response.json() == reply

    def test_not_a_floor_plan_error_is_returned_with_200(self, client, fake_analyser):
        reply = {"error": "The provided image does not appear to be a floor plan."}
        fake_analyser(json.dumps(reply))
        response = client.post(ENDPOINT, files=upload())
        assert response.status_code == 200
        assert response.json() == reply

    def test_request_sent_to_analyser(self, client, fake_analyser, monkeypatch):
        monkeypatch.setenv("FLOOR_PLAN_TIMEOUT_SECONDS", "30")
        created = fake_analyser('{"rooms": [], "totalArea": 0}')
        client.post(ENDPOINT, files=upload(content_type="image/webp"))

        assert len(created) == 1
        fake = created[0]
        assert fake.options == {"api_key": "test-key", "max_retries": 0, "timeout": 30.0}
        call = fake.messages.calls[0]
        assert call["model"] == "claude-3-7-sonnet-20250219"
        assert call["max_tokens"] == 4096
        text_block, image_block = call["messages"][0]["content"]
        assert text_block == {"type": "text", "text": FLOOR_PLAN_PROMPT}
        assert image_block["source"] == {
            "type": "base64",
            "media_type": "image/webp",
            "data": base64.b64encode(PNG_BYTES).decode(),
        }

    def test_unparseable_reply_returns_bounded_preview(self, client, fake_analyser):
        text = "Sure! Here is the analysis you asked for. " * 10
        fake_analyser(text)
        response = client.post(ENDPOINT, files=upload())
        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Failed to parse Claude API response"
        assert body["rawResponsePreview"] == text[:100]
        assert len(body["rawResponsePreview"]) == 100

    @pytest.mark.parametrize("constant", ["NaN", "Infinity", "-Infinity"])
    def test_non_finite_numbers_are_a_parse_failure(self, client, fake_analyser, constant):
        text = '{"rooms": [], "totalArea": ' + constant + ', "notes": "x"}'
        fake_analyser(text)
        response = client.post(ENDPOINT, files=upload())
        assert response.status_code == 500
        assert response.json() == {
            "error": "Failed to parse Claude API response",
            "rawResponsePreview": text[:100],
        }

    def test_empty_reply(self, client, fake_analyser):
        fake_analyser("")
        response = client.post(ENDPOINT, files=upload())
        assert response.status_code == 500
        assert response.json() == {"error": "Empty response from Claude API"}

    def test_non_text_block_counts_as_empty(self, client, fake_analyser):
        fake_analyser(SimpleNamespace(content=[SimpleNamespace(type="tool_use", text=None)]))
        response = client.post(ENDPOINT, files=upload())
        assert response.status_code == 500
        assert response.json() == {"error": "Empty response from Claude API"}

    def test_analyser_error_message_is_forwarded(self, client, fake_analyser):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        fake_analyser(anthropic.APIConnectionError(message="Connection refused", request=request))
        response = client.post(ENDPOINT, files=upload())
        assert response.status_code == 500
        assert response.json() == {"error": "Connection refused"}

    @pytest.mark.parametrize(
        "status_code, error_class",
        [(401, anthropic.AuthenticationError), (429, anthropic.RateLimitError)],
    )
    def test_status_error_message_is_forwarded(self, client, fake_analyser, status_code, error_class):
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        upstream = httpx.Response(status_code, request=request)
        fake_analyser(error_class(f"Error code: {status_code}", response=upstream, body=None))
        response = client.post(ENDPOINT, files=upload())
        assert response.status_code == 500
        assert response.json() == {"error": f"Error code: {status_code}"}

    def test_unexpected_exception_is_caught(self, client, fake_analyser):
        fake_analyser(KeyError("boom"))
        response = client.post(ENDPOINT, files=upload())
        assert response.status_code == 500
        assert "error" in response.json()
        assert "rawResponsePreview" not in response.json()
