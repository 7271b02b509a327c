import json
import os
import sys
from types import SimpleNamespace

import httpx
import openai
import pytest
import requests

sys.path.insert(0, os.path.abspath("src"))

from supplylist_automation.extraction.client import (
    FAILURE_MESSAGE,
    NO_ITEMS_MESSAGE,
    STATUS_NO_ITEMS,
    STATUS_NOT_SUPPLY_LIST,
    STATUS_OK,
    STATUS_PARSE_ERROR,
    STATUS_TRANSPORT_ERROR,
    ExtractionClient,
    OpenAIVisionTransport,
    OpenRouterTransport,
    TransportError,
)
from supplylist_automation.extraction.preprocess import PreparedImage
from supplylist_automation.extraction.prompt import NOT_A_SUPPLY_LIST_ERROR

IMAGE = PreparedImage(data="aGVsbG8=", mime_type="image/jpeg", original_bytes=5, optimized_bytes=5)

GOOD_REPLY = "```json\n" + json.dumps(
    {
        "schoolName": "Lincoln Elementary",
        "year": "2024-2025",
        "teacherName": None,
        "gradeLists": [{"grade": "2nd Grade", "supplyItems": [{"name": "Pencils", "quantity": 24, "originalText": "24 pencils"}]}],
    }
) + "\n```"


class ScriptedTransport:
    def __init__(self, *replies):
        self.replies = list(replies)
        self.calls = 0
        self.images = []

    def complete(self, image):
        self.calls += 1
        self.images.append(image)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def test_ok_reply():
    transport = ScriptedTransport(GOOD_REPLY)
    outcome = ExtractionClient(transport).extract(IMAGE)
    assert outcome.status == STATUS_OK
    assert not outcome.failed
    assert outcome.result.school_name == "Lincoln Elementary"
    assert outcome.result.item_count() == 1


def test_error_object_is_a_result_not_a_failure():
    transport = ScriptedTransport(json.dumps({"error": NOT_A_SUPPLY_LIST_ERROR}))
    outcome = ExtractionClient(transport).extract(IMAGE)
    assert outcome.status == STATUS_NOT_SUPPLY_LIST
    assert not outcome.failed
    assert outcome.message == NOT_A_SUPPLY_LIST_ERROR


@pytest.mark.parametrize(
    "payload",
    [
        {"gradeLists": []},
        {"gradeLists": [{"grade": "K", "supplyItems": []}]},
        {"schoolName": "Lincoln"},
    ],
)
def test_no_items_is_distinct_from_not_a_supply_list(payload):
    outcome = ExtractionClient(ScriptedTransport(json.dumps(payload))).extract(IMAGE)
    assert outcome.status == STATUS_NO_ITEMS
    assert outcome.message == NO_ITEMS_MESSAGE
    assert not outcome.failed


def test_parse_failure_is_not_retried():
    transport = ScriptedTransport("Sorry, I cannot help with that.", GOOD_REPLY)
    outcome = ExtractionClient(transport).extract(IMAGE)
    assert outcome.status == STATUS_PARSE_ERROR
    assert outcome.failed
    assert outcome.raw_reply == "Sorry, I cannot help with that."
    assert transport.calls == 1


def test_transport_failure_is_retried_once():
    transport = ScriptedTransport(TransportError("timeout"), GOOD_REPLY)
    outcome = ExtractionClient(transport).extract(IMAGE)
    assert outcome.status == STATUS_OK
    assert transport.calls == 2


def test_transport_failure_gives_up_after_one_retry():
    transport = ScriptedTransport(TransportError("down"), TransportError("down"), GOOD_REPLY)
    outcome = ExtractionClient(transport).extract(IMAGE)
    assert outcome.status == STATUS_TRANSPORT_ERROR
    assert outcome.failed
    assert outcome.message == FAILURE_MESSAGE
    assert transport.calls == 2


def test_raw_data_url_is_stripped_before_sending():
    transport = ScriptedTransport(GOOD_REPLY)
    ExtractionClient(transport, optimize_images=False).extract("data:image/jpeg;base64,aGVsbG8=")
    sent = transport.images[0]
    assert sent.data == "aGVsbG8="
    assert sent.data_url == "data:image/jpeg;base64,aGVsbG8="


class FakeResponse:
    def __init__(self, status_code, body):
        self.status_code = status_code
        self._body = body
        self.text = json.dumps(body)

    def json(self):
        return self._body


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.posts = []

    def post(self, url, headers=None, json=None, timeout=None):
        self.posts.append({"url": url, "headers": headers, "json": json, "timeout": timeout})
        if self.error:
            raise self.error
        return self.response

    def close(self):
        pass


def test_openrouter_transport_returns_message_content():
    session = FakeSession(FakeResponse(200, {"choices": [{"message": {"content": GOOD_REPLY}}]}))
    transport = OpenRouterTransport("key", "some/model", timeout=12, session=session)
    assert transport.complete(IMAGE) == GOOD_REPLY

    sent = session.posts[0]
    assert sent["url"] == OpenRouterTransport.ENDPOINT
    assert sent["timeout"] == 12.0
    assert sent["headers"]["Authorization"] == "Bearer key"
    content = sent["json"]["messages"][1]["content"]
    assert content[1]["image_url"]["url"] == IMAGE.data_url


def test_openrouter_http_error_is_a_transport_error():
    transport = OpenRouterTransport("key", session=FakeSession(FakeResponse(503, {"error": "busy"})))
    with pytest.raises(TransportError) as exc:
        transport.complete(IMAGE)
    assert exc.value.status_code == 503


def test_openrouter_timeout_is_a_transport_error():
    transport = OpenRouterTransport("key", session=FakeSession(error=requests.Timeout("read timed out")))
    with pytest.raises(TransportError):
        transport.complete(IMAGE)


def test_openai_sdk_errors_become_transport_failures():
    transport = OpenAIVisionTransport("sk-test")
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    calls = []

    def create(**kwargs):
        calls.append(kwargs["model"])
        raise openai.APIResponseValidationError(httpx.Response(200, request=request), body=None)

    transport._client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    try:
        with pytest.raises(TransportError):
            transport.complete(IMAGE)
        outcome = ExtractionClient(transport).extract(IMAGE)
    finally:
        transport.close()
    assert outcome.status == STATUS_TRANSPORT_ERROR
    assert len(calls) == 3
