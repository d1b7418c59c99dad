import json
import os
import tempfile
from unittest import mock

from django.test import override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APISimpleTestCase

from eventstore.exceptions import (
    ERROR_INVALID_POST_BODY,
    ERROR_INVALID_PUT_BODY,
    ERROR_KEY_DELETED,
    ERROR_KEY_EXISTS,
    ERROR_KEY_NOT_FOUND,
)

INITIAL_STATE = {
    "key1": [
        {"event": "create", "value": "value1"},
    ],
    "key2": [
        {"event": "create", "value": "value1"},
        {"event": "delete", "value": ""},
    ],
}

JSON = "application/json"
TEXT = "text/plain"


class EventStoreTestCase(APISimpleTestCase):
    """Points the store at a fresh data file for every test."""

    initial_state = INITIAL_STATE

    def setUp(self):
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)
        self.data_file = os.path.join(tmpdir.name, "data.json")

        settings_override = override_settings(EVENTSTORE_DATA_FILE=self.data_file)
        settings_override.enable()
        self.addCleanup(settings_override.disable)

        with open(self.data_file, "w", encoding="utf-8") as f:
            json.dump(self.initial_state, f)

    def read_data_file(self) -> bytes:
        with open(self.data_file, "rb") as f:
            return f.read()

    def create(self, key, value, url="/api/"):
        return self.client.post(url, json.dumps({key: value}), content_type=JSON)

    def update(self, key, value, method="put"):
        return getattr(self.client, method)(f"/api/{key}", value, content_type=TEXT)

    def history(self, key):
        return self.client.get(f"/api/{key}/history")

    def assertText(self, response, code, body=""):
        self.assertEqual(response.status_code, code)
        self.assertEqual(response.content.decode(), body)
        if body:
            self.assertTrue(response["Content-Type"].startswith(TEXT))


class KeyValueApiTests(EventStoreTestCase):
    def test_get_key_which_exists(self):
        url = reverse("eventstore:kv-detail", args=["key1"])
        self.assertText(self.client.get(url), status.HTTP_200_OK, "value1")

    def test_get_key_which_has_been_deleted(self):
        self.assertText(self.client.get("/api/key2"), status.HTTP_204_NO_CONTENT)

    def test_get_key_which_has_never_existed(self):
        self.assertText(self.client.get("/api/key3"), status.HTTP_404_NOT_FOUND, ERROR_KEY_NOT_FOUND)

    def test_get_key_with_trailing_slash(self):
        self.assertText(self.client.get("/api/key1/"), status.HTTP_200_OK, "value1")

    def test_get_ignores_accept_header(self):
        response = self.client.get("/api/key1", HTTP_ACCEPT=JSON)
        self.assertText(response, status.HTTP_200_OK, "value1")

    def test_post_key_which_has_never_existed(self):
        for key, url in (("key3", "/api/"), ("key4", "/api")):
            with self.subTest(url=url):
                response = self.create(key, "value3", url=url)
                self.assertEqual(response.status_code, status.HTTP_201_CREATED)
                self.assertEqual(response.content, b"")
                self.assertText(self.client.get(f"/api/{key}"), status.HTTP_200_OK, "value3")

    def test_post_key_which_already_exists(self):
        for url in ("/api/", "/api"):
            with self.subTest(url=url):
                response = self.create("key1", "value1", url=url)
                self.assertText(response, status.HTTP_400_BAD_REQUEST, ERROR_KEY_EXISTS)
        self.assertEqual(len(self.history("key1").json()), 1)

    def test_post_key_which_has_been_deleted(self):
        response = self.create("key2", "value2")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertText(self.client.get("/api/key2"), status.HTTP_200_OK, "value2")

    def test_post_with_bad_request_bodies(self):
        bodies = [
            "key3",
            "",
            "[]",
            '"key3"',
            "{}",
            '{"key3":"value3","key4":"value4"}',
            '{"key3":""}',
            '{"key3":3}',
            '{"key3":null}',
            '{"":"value3"}',
        ]
        for body in bodies:
            with self.subTest(body=body):
                response = self.client.post("/api/", body, content_type=JSON)
                self.assertText(response, status.HTTP_400_BAD_REQUEST, ERROR_INVALID_POST_BODY)

    def test_post_with_bad_content_type(self):
        for body in ('{"key3":"value3"}', "key3"):
            with self.subTest(body=body):
                response = self.client.post("/api/", body, content_type=TEXT)
                self.assertText(response, status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, ERROR_INVALID_POST_BODY)

    def test_post_accepts_charset_parameter(self):
        response = self.client.post(
            "/api/", '{"key3":"value3"}', content_type="application/json; charset=utf-8"
        )
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)

    def test_rejected_posts_leave_data_file_unchanged(self):
        before = self.read_data_file()
        self.client.post("/api/", '{"key3":"value3","key4":"value4"}', content_type=JSON)
        self.client.post("/api/", '["key3"]', content_type=JSON)
        self.client.post("/api/", '{"key3":"value3"}', content_type=TEXT)
        self.create("key1", "other")
        self.assertEqual(self.read_data_file(), before)

    def test_put_update_to_key_which_exists(self):
        for method in ("put", "patch"):
            with self.subTest(method=method):
                response = self.update("key1", f"{method}-value", method=method)
                self.assertText(response, status.HTTP_204_NO_CONTENT)
                self.assertText(self.client.get("/api/key1"), status.HTTP_200_OK, f"{method}-value")

    def test_put_keeps_value_verbatim(self):
        self.update("key1", "  spaced value\n")
        self.assertText(self.client.get("/api/key1"), status.HTTP_200_OK, "  spaced value\n")

    def test_put_update_to_key_which_has_been_deleted(self):
        response = self.update("key2", "value4")
        self.assertText(response, status.HTTP_400_BAD_REQUEST, ERROR_KEY_DELETED)

    def test_put_update_to_key_which_has_never_existed(self):
        response = self.update("key3", "value4")
        self.assertText(response, status.HTTP_404_NOT_FOUND, ERROR_KEY_NOT_FOUND)

    def test_put_with_empty_body(self):
        response = self.update("key1", "")
        self.assertText(response, status.HTTP_400_BAD_REQUEST, ERROR_INVALID_PUT_BODY)

    def test_put_with_bad_content_type(self):
        for body in ("value4", ""):
            with self.subTest(body=body):
                response = self.client.put("/api/key1", body, content_type=JSON)
                self.assertText(response, status.HTTP_415_UNSUPPORTED_MEDIA_TYPE, ERROR_INVALID_PUT_BODY)

    def test_delete_key_which_exists(self):
        self.assertText(self.client.delete("/api/key1"), status.HTTP_204_NO_CONTENT)
        self.assertText(self.client.get("/api/key1"), status.HTTP_204_NO_CONTENT)

    def test_delete_key_which_has_already_been_deleted(self):
        response = self.client.delete("/api/key2")
        self.assertText(response, status.HTTP_400_BAD_REQUEST, ERROR_KEY_DELETED)

    def test_delete_key_which_has_never_existed(self):
        response = self.client.delete("/api/key3")
        self.assertText(response, status.HTTP_404_NOT_FOUND, ERROR_KEY_NOT_FOUND)


class KeyHistoryApiTests(EventStoreTestCase):
    def test_history_for_key_which_exists(self):
        response = self.client.get(reverse("eventstore:kv-history", args=["key1"]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response["Content-Type"], JSON)
        self.assertEqual(response.content, b'[{"event":"create","value":"value1"}]')

    def test_history_includes_delete_events(self):
        response = self.client.get("/api/key2/history/")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(
            response.json(),
            [{"event": "create", "value": "value1"}, {"event": "delete", "value": ""}],
        )

    def test_history_for_key_which_has_never_existed(self):
        self.assertText(self.history("key3"), status.HTTP_404_NOT_FOUND, ERROR_KEY_NOT_FOUND)


class RoutingTests(EventStoreTestCase):
    def test_unknown_path_shapes_return_404(self):
        for url in ("/api/key1/history/other", "/api/key1/incorrect", "/apikey1", "/other/key1"):
            with self.subTest(url=url):
                self.assertEqual(self.client.get(url).status_code, status.HTTP_404_NOT_FOUND)

    def test_wrong_verbs_return_405(self):
        requests = [
            ("GET", "/api/"),
            ("PUT", "/api/"),
            ("DELETE", "/api/"),
            ("POST", "/api/key3"),
            ("POST", "/api/key1/history"),
            ("DELETE", "/api/key1/history"),
        ]
        for url in ("/api/", "/api/key1", "/api/key1/history"):
            requests += [("HEAD", url), ("OPTIONS", url)]

        for method, url in requests:
            with self.subTest(method=method, url=url):
                response = self.client.generic(method, url, "key1", content_type=TEXT)
                self.assertEqual(response.status_code, status.HTTP_405_METHOD_NOT_ALLOWED)

    def test_wrong_verb_on_history_is_answered_in_plain_text(self):
        response = self.client.post("/api/key1/history", "key1", content_type=TEXT)
        self.assertText(response, status.HTTP_405_METHOD_NOT_ALLOWED, 'Method "POST" not allowed.')
        self.assertEqual(response["Allow"], "GET")


class UnexpectedErrorTests(EventStoreTestCase):
    def test_unreadable_document_returns_500(self):
        with open(self.data_file, "w", encoding="utf-8") as f:
            f.write("not json")

        with self.assertLogs("eventstore", level="ERROR"):
            response = self.client.get("/api/key1")
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertTrue(response.content.decode().startswith("Unexpected error:"))

    def test_invalid_record_returns_500_for_every_operation(self):
        with open(self.data_file, "w", encoding="utf-8") as f:
            json.dump({"key1": [{"event": "update", "value": "value1"}]}, f)

        with self.assertLogs("eventstore", level="ERROR"):
            self.assertEqual(self.client.get("/api/key1").status_code, 500)
            self.assertEqual(self.history("key1").status_code, 500)
            self.assertEqual(self.create("key9", "value9").status_code, 500)

    def test_document_that_is_not_utf8_returns_500(self):
        with open(self.data_file, "wb") as f:
            f.write(b'{"k\xff": []}')

        with self.assertLogs("eventstore", level="ERROR"):
            response = self.client.get("/api/key1")
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertTrue(response["Content-Type"].startswith(TEXT))
        self.assertTrue(response.content.decode().startswith("Unexpected error:"))

    def test_non_string_stored_value_returns_500(self):
        with open(self.data_file, "w", encoding="utf-8") as f:
            json.dump({"key1": [{"event": "create", "value": 5}]}, f)

        with self.assertLogs("eventstore", level="ERROR"):
            response = self.client.get("/api/key1")
        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        self.assertTrue(response.content.decode().startswith("Unexpected error:"))

    def test_failed_save_returns_500(self):
        before = self.read_data_file()

        def open_read_only(path, mode="r", *args, **kwargs):
            if "w" in mode:
                raise PermissionError(13, "Permission denied", path)
            return open(path, mode, *args, **kwargs)

        with mock.patch("eventstore.repository.open", side_effect=open_read_only, create=True):
            with self.assertLogs("eventstore", level="ERROR"):
                response = self.create("key3", "value3")

        self.assertEqual(response.status_code, status.HTTP_500_INTERNAL_SERVER_ERROR)
        body = response.content.decode()
        self.assertTrue(body.startswith("Unexpected error:"))
        self.assertIn("Permission denied", body)
        self.assertEqual(self.read_data_file(), before)


class KeyLifecycleTests(EventStoreTestCase):
    initial_state = {}

    def test_create_read_update_read_delete_read_history(self):
        self.assertEqual(self.create("key1", "value1").status_code, status.HTTP_201_CREATED)
        self.assertText(self.client.get("/api/key1"), status.HTTP_200_OK, "value1")
        self.assertText(self.update("key1", "value2"), status.HTTP_204_NO_CONTENT)
        self.assertText(self.client.get("/api/key1"), status.HTTP_200_OK, "value2")
        self.assertText(self.client.delete("/api/key1"), status.HTTP_204_NO_CONTENT)
        self.assertText(self.client.get("/api/key1"), status.HTTP_204_NO_CONTENT)

        response = self.history("key1")
        self.assertEqual(
            response.content,
            b'[{"event":"create","value":"value1"},'
            b'{"event":"update","value":"value2"},'
            b'{"event":"delete","value":""}]',
        )

    def test_create_delete_create_update_history(self):
        self.create("key1", "value1")
        self.client.delete("/api/key1")
        self.assertText(self.update("key1", "value2"), status.HTTP_400_BAD_REQUEST, ERROR_KEY_DELETED)
        self.assertText(self.client.delete("/api/key1"), status.HTTP_400_BAD_REQUEST, ERROR_KEY_DELETED)
        self.assertEqual(self.create("key1", "value1").status_code, status.HTTP_201_CREATED)
        self.update("key1", "value2")

        self.assertEqual(
            self.history("key1").json(),
            [
                {"event": "create", "value": "value1"},
                {"event": "delete", "value": ""},
                {"event": "create", "value": "value1"},
                {"event": "update", "value": "value2"},
            ],
        )

    def test_two_keys_keep_separate_histories(self):
        self.create("key1", "value1")
        self.create("key2", "value3")
        self.update("key1", "value2")
        self.client.delete("/api/key2")

        self.assertText(self.client.get("/api/key1"), status.HTTP_200_OK, "value2")
        self.assertText(self.client.get("/api/key2"), status.HTTP_204_NO_CONTENT)
        self.assertEqual(
            self.history("key1").json(),
            [{"event": "create", "value": "value1"}, {"event": "update", "value": "value2"}],
        )
        self.assertEqual(
            self.history("key2").json(),
            [{"event": "create", "value": "value3"}, {"event": "delete", "value": ""}],
        )

    def test_history_grows_by_one_per_successful_mutation(self):
        calls = [
            lambda: self.create("key1", "a"),
            lambda: self.create("key1", "again"),
            lambda: self.update("key1", "b"),
            lambda: self.update("key1", ""),
            lambda: self.client.delete("/api/key1"),
            lambda: self.client.delete("/api/key1"),
            lambda: self.update("key1", "c"),
            lambda: self.create("key1", "d"),
        ]
        expected_lengths = [1, 1, 2, 2, 3, 3, 3, 4]

        for call, expected in zip(calls, expected_lengths):
            call()
            self.assertEqual(len(self.history("key1").json()), expected)

    def test_never_created_key_returns_404_everywhere(self):
        self.assertEqual(self.client.get("/api/nope").status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(self.update("nope", "value").status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(self.client.delete("/api/nope").status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(self.history("nope").status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(json.loads(self.read_data_file()), {})

    def test_data_file_uses_empty_value_for_deletes(self):
        self.create("key1", "value1")
        self.client.delete("/api/key1")
        self.assertEqual(
            json.loads(self.read_data_file()),
            {"key1": [{"event": "create", "value": "value1"}, {"event": "delete", "value": ""}]},
        )
