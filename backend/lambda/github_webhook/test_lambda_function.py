"""test_lambda_function.py — Tests for the commit-progress webhook.

Run: python3 -m pytest test_lambda_function.py -v
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import importlib.util
import json
import os
import sys
import tempfile
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "shared_layer", "python"))

from portal_shared import config
from portal_shared.backends import LocalFileBackend
from portal_shared.selector import PortalStore

_spec = importlib.util.spec_from_file_location(
    "github_webhook_lambda",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "lambda_function.py"),
)
github_webhook = importlib.util.module_from_spec(_spec)
_spec.loader.exec_module(github_webhook)

SECRET = "whsec-test"


def _sign(raw: str, secret: str = SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), raw.encode(), hashlib.sha256).hexdigest()


def _event(payload, gh_event="push", signature=None, method="POST", base64_body=False):
    raw = json.dumps(payload)
    event = {
        "requestContext": {"http": {"method": method, "path": "/github/webhook"}},
        "rawPath": "/github/webhook",
        "headers": {
            "X-GitHub-Event": gh_event,
            "X-GitHub-Delivery": "delivery-1",
            "X-Hub-Signature-256": signature if signature is not None else _sign(raw),
        },
        "body": raw,
    }
    if base64_body:
        event["body"] = base64.b64encode(raw.encode()).decode()
        event["isBase64Encoded"] = True
    return event


def _push(*messages, ref="refs/heads/main"):
    return {
        "ref": ref,
        "commits": [
            {"id": f"{i:040d}", "message": m, "author": {"name": "Cody"}}
            for i, m in enumerate(messages)
        ],
    }


class WebhookTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.store = PortalStore.for_backend(LocalFileBackend(os.path.join(self._tmp.name, "live.json")))
        patcher = patch.object(github_webhook, "_get_store", return_value=self.store)
        patcher.start()
        self.addCleanup(patcher.stop)
        for name, value in (("GITHUB_WEBHOOK_SECRET", SECRET), ("GITHUB_WEBHOOK_SECRET_ID", ""), ("GITHUB_BRANCH", "main")):
            patcher = patch.object(config, name, value)
            patcher.start()
            self.addCleanup(patcher.stop)

    def call(self, event):
        resp = github_webhook.lambda_handler(event, None)
        return resp["statusCode"], json.loads(resp["body"])

    def test_push_updates_progress(self):
        status, body = self.call(_event(_push("feat: Design system - Phase: Design - Progress: 40%")))
        self.assertEqual(status, 200)
        self.assertTrue(body["processed"])
        self.assertEqual(body["progress"], 40)
        self.assertEqual(body["phase"], "Design")

        document = self.store.status.get_status()
        self.assertEqual(document["updates"][0]["message"], "Design system")
        self.assertEqual(document["updates"][0]["author"], "Cody")

    def test_base64_body(self):
        status, body = self.call(_event(_push("Hero done - 25%"), base64_body=True))
        self.assertEqual(status, 200)
        self.assertEqual(body["progress"], 25)

    def test_bad_signature(self):
        status, body = self.call(_event(_push("x - 10%"), signature=_sign("other body")))
        self.assertEqual(status, 401)
        self.assertEqual(self.store.status.get_status()["progress"], 0)

    def test_malformed_base64_body_rejected(self):
        event = _event(_push("x - 10%"))
        event["body"] = "!!!notb64="
        event["isBase64Encoded"] = True
        status, body = self.call(event)
        self.assertEqual(status, 401)
        self.assertEqual(body["error_envelope"]["code"], "PERMISSION_DENIED")

    def test_missing_secret_rejects(self):
        with patch.object(config, "GITHUB_WEBHOOK_SECRET", ""):
            status, _ = self.call(_event(_push("x - 10%")))
        self.assertEqual(status, 401)

    def test_other_branch_ignored(self):
        status, body = self.call(_event(_push("x - 10%", ref="refs/heads/feature")))
        self.assertEqual(status, 200)
        self.assertEqual(body["reason"], "branch_ignored")

    def test_commits_without_hints(self):
        status, body = self.call(_event(_push("fix: typo", "chore: bump deps")))
        self.assertFalse(body["processed"])
        self.assertEqual(body["reason"], "no_progress_hints")

    def test_ping_and_other_events(self):
        _, body = self.call(_event({"zen": "hi"}, gh_event="ping"))
        self.assertEqual(body["reason"], "ping")
        _, body = self.call(_event({}, gh_event="issues"))
        self.assertEqual(body["reason"], "event_not_handled")

    def test_method_not_allowed(self):
        status, body = self.call(_event({}, method="GET"))
        self.assertEqual(status, 405)
        self.assertEqual(body["allowed"], ["POST"])


if __name__ == "__main__":
    unittest.main()
