"""test_lambda_function.py — Handler tests for messages_api.

Every test runs against a real LocalFileBackend in a temp directory, so the
request → store → file → response path is exercised without AWS.

Run: python3 -m pytest test_lambda_function.py -v
"""

from __future__ import annotations

import importlib.util
import json
import os
import sys
import tempfile
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "shared_layer", "python"))

from portal_shared import config
from portal_shared.backends import DocumentBackend, LocalFileBackend
from portal_shared.errors import StorageUnavailable
from portal_shared.selector import PortalStore

_spec = importlib.util.spec_from_file_location(
    "messages_api_lambda",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "lambda_function.py"),
)
messages_api = importlib.util.module_from_spec(_spec)
_spec.loader.exec_module(messages_api)


def _make_event(method="GET", path="/messages", body=None, query_params=None, headers=None):
    """Build a mock API Gateway v2 event."""
    event = {
        "requestContext": {"http": {"method": method, "path": path}},
        "headers": headers or {"host": "example.com"},
        "rawPath": path,
        "queryStringParameters": query_params or {},
    }
    if body is not None:
        event["body"] = json.dumps(body) if isinstance(body, dict) else body
    return event


def _body(resp):
    return json.loads(resp["body"])


class _DownBackend(DocumentBackend):
    name = "down"

    def load(self):
        raise StorageUnavailable("connection refused")

    def save(self, document, revision):
        raise StorageUnavailable("connection refused")


class _HandlerTestCase(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.path = os.path.join(self._tmp.name, "inex-live-data.json")
        self.store = PortalStore.for_backend(LocalFileBackend(self.path))
        patcher = patch.object(messages_api, "_get_store", return_value=self.store)
        patcher.start()
        self.addCleanup(patcher.stop)
        self.addCleanup(self._tmp.cleanup)

    def call(self, *args, **kwargs):
        return messages_api.lambda_handler(_make_event(*args, **kwargs), None)

    def create(self, **fields):
        fields.setdefault("text", "Hello")
        resp = self.call("POST", body=fields)
        self.assertEqual(resp["statusCode"], 201)
        return _body(resp)["data"]


class OptionsTests(_HandlerTestCase):
    def test_collection_preflight(self):
        resp = self.call("OPTIONS")
        self.assertEqual(resp["statusCode"], 204)
        self.assertEqual(resp["headers"]["Access-Control-Allow-Origin"], "*")
        self.assertIn("POST", resp["headers"]["Access-Control-Allow-Methods"])

    def test_manage_preflight(self):
        resp = self.call("OPTIONS", path="/messages/manage")
        self.assertEqual(resp["statusCode"], 204)
        self.assertIn("DELETE", resp["headers"]["Access-Control-Allow-Methods"])

    def test_preflight_does_not_touch_storage(self):
        with patch.object(messages_api, "_get_store", side_effect=AssertionError("storage touched")):
            resp = self.call("OPTIONS")
        self.assertEqual(resp["statusCode"], 204)

    def test_allow_listed_origin_reflected(self):
        with patch.object(config, "CORS_ALLOWED_ORIGINS", ("https://inex.example.com",)):
            resp = self.call("GET", headers={"Origin": "https://inex.example.com"})
        self.assertEqual(resp["headers"]["Access-Control-Allow-Origin"], "https://inex.example.com")


class CreateTests(_HandlerTestCase):
    def test_create_then_list(self):
        resp = self.call("POST", body={"text": "Testing"})
        self.assertEqual(resp["statusCode"], 201)
        created = _body(resp)["data"]
        self.assertEqual(created["priority"], "normal")
        self.assertEqual(created["status"], "new")

        listed = _body(self.call("GET"))
        self.assertTrue(listed["success"])
        self.assertEqual(listed["messages"][0]["id"], created["id"])
        self.assertEqual(listed["messages"][0]["text"], "Testing")
        self.assertEqual(listed["count"], 1)
        self.assertEqual(listed["pagination"]["total"], 1)
        self.assertFalse(listed["pagination"]["hasMore"])

    def test_create_persists_to_file(self):
        created = self.create(text="on disk")
        with open(self.path, encoding="utf-8") as fh:
            stored = json.load(fh)
        self.assertEqual(stored["messages"][0]["id"], created["id"])

    def test_blank_text_returns_400(self):
        resp = self.call("POST", body={"text": "   "})
        self.assertEqual(resp["statusCode"], 400)
        body = _body(resp)
        self.assertFalse(body["success"])
        self.assertEqual(body["error_envelope"]["code"], "INVALID_INPUT")
        self.assertFalse(body["error_envelope"]["retryable"])

    def test_invalid_json_returns_400(self):
        resp = self.call("POST", body="{not json")
        self.assertEqual(resp["statusCode"], 400)

    def test_method_not_allowed(self):
        resp = self.call("PATCH")
        self.assertEqual(resp["statusCode"], 405)
        self.assertEqual(_body(resp)["allowed"], ["GET", "POST", "OPTIONS"])


class ListTests(_HandlerTestCase):
    def test_filters_and_pagination(self):
        self.create(text="a", priority="high")
        self.create(text="b", priority="low")
        self.create(text="c", priority="high")

        body = _body(self.call("GET", query_params={"priority": "high", "limit": "1"}))
        self.assertEqual([m["text"] for m in body["messages"]], ["c"])
        self.assertEqual(body["pagination"]["total"], 2)
        self.assertTrue(body["pagination"]["hasMore"])

    def test_bad_limit_returns_400(self):
        resp = self.call("GET", query_params={"limit": "lots"})
        self.assertEqual(resp["statusCode"], 400)

    def test_storage_down_degrades(self):
        store = PortalStore.for_backend(_DownBackend())
        with patch.object(messages_api, "_get_store", return_value=store):
            resp = self.call("GET")
        self.assertEqual(resp["statusCode"], 200)
        body = _body(resp)
        self.assertEqual(body["messages"], [])
        self.assertTrue(body["degraded"])

    def test_create_fails_when_storage_down(self):
        store = PortalStore.for_backend(_DownBackend())
        with patch.object(messages_api, "_get_store", return_value=store):
            resp = self.call("POST", body={"text": "lost?"})
        self.assertEqual(resp["statusCode"], 500)
        self.assertEqual(_body(resp)["error_envelope"]["code"], "STORAGE_UNAVAILABLE")
        self.assertTrue(_body(resp)["error_envelope"]["retryable"])

    def test_production_hides_storage_detail(self):
        store = PortalStore.for_backend(_DownBackend())
        with patch.object(messages_api, "_get_store", return_value=store), \
                patch.object(config, "PORTAL_ENV", "production"):
            resp = self.call("POST", body={"text": "lost?"})
        self.assertNotIn("connection refused", resp["body"])

    def test_unexpected_error_returns_500(self):
        with patch.object(messages_api, "_get_store", side_effect=RuntimeError("boom")):
            resp = self.call("GET")
        self.assertEqual(resp["statusCode"], 500)
        self.assertIn("Access-Control-Allow-Origin", resp["headers"])


class ManageTests(_HandlerTestCase):
    def test_mark_read(self):
        created = self.create()
        resp = self.call("PUT", path="/messages/manage", body={"id": created["id"], "action": "markRead"})
        self.assertEqual(resp["statusCode"], 200)
        self.assertTrue(_body(resp)["data"]["read"])

    def test_message_id_alias(self):
        created = self.create()
        resp = self.call("PUT", path="/messages/manage", body={"messageId": created["id"], "action": "markRead"})
        self.assertEqual(resp["statusCode"], 200)

    def test_add_response(self):
        created = self.create()
        resp = self.call(
            "PUT",
            path="/messages/manage",
            body={"id": created["id"], "action": "addResponse", "responseText": "hi"},
        )
        data = _body(resp)["data"]
        self.assertEqual(data["status"], "responded")
        self.assertEqual(len(data["responses"]), 1)

    def test_unknown_action_returns_400(self):
        created = self.create()
        resp = self.call("PUT", path="/messages/manage", body={"id": created["id"], "action": "explode"})
        self.assertEqual(resp["statusCode"], 400)

    def test_missing_id_returns_400(self):
        resp = self.call("PUT", path="/messages/manage", body={"action": "markRead"})
        self.assertEqual(resp["statusCode"], 400)

    def test_unknown_id_returns_404(self):
        resp = self.call("PUT", path="/messages/manage", body={"id": "404", "action": "markRead"})
        self.assertEqual(resp["statusCode"], 404)
        self.assertEqual(_body(resp)["error_envelope"]["code"], "NOT_FOUND")

    def test_archive_via_body_and_query(self):
        first = self.create(text="one")
        second = self.create(text="two")
        resp = self.call("DELETE", path="/messages/manage", body={"id": first["id"]})
        self.assertEqual(resp["statusCode"], 200)
        data = _body(resp)["data"]
        self.assertEqual(data["status"], "archived")
        self.assertTrue(data["archivedAt"])

        resp = self.call("DELETE", path="/messages/manage", query_params={"id": second["id"]})
        self.assertEqual(resp["statusCode"], 200)

        archived = _body(self.call("GET", query_params={"status": "archived"}))
        self.assertEqual(archived["pagination"]["total"], 2)

    def test_get_one(self):
        created = self.create(text="find me")
        resp = self.call("GET", path="/messages/manage", query_params={"id": created["id"]})
        self.assertEqual(_body(resp)["data"]["text"], "find me")

    def test_manage_method_not_allowed(self):
        resp = self.call("POST", path="/messages/manage", body={})
        self.assertEqual(resp["statusCode"], 405)
        self.assertIn("DELETE", _body(resp)["allowed"])


class StaffKeyTests(_HandlerTestCase):
    def setUp(self):
        super().setUp()
        patcher = patch.object(config, "PORTAL_STAFF_API_KEYS", ("staff-secret",))
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_client_routes_stay_open(self):
        self.create(text="no key needed")
        self.assertEqual(self.call("GET")["statusCode"], 200)

    def test_manage_requires_key(self):
        created = self.create()
        resp = self.call("PUT", path="/messages/manage", body={"id": created["id"], "action": "markRead"})
        self.assertEqual(resp["statusCode"], 401)
        self.assertEqual(_body(resp)["error_envelope"]["code"], "PERMISSION_DENIED")

    def test_wrong_key_rejected(self):
        created = self.create()
        resp = self.call(
            "DELETE",
            path="/messages/manage",
            body={"id": created["id"]},
            headers={"X-Portal-Staff-Key": "guess"},
        )
        self.assertEqual(resp["statusCode"], 401)

    def test_valid_key_accepted(self):
        created = self.create()
        resp = self.call(
            "DELETE",
            path="/messages/manage",
            body={"id": created["id"]},
            headers={"x-portal-staff-key": "staff-secret"},
        )
        self.assertEqual(resp["statusCode"], 200)


if __name__ == "__main__":
    unittest.main()
