"""Tests for field-level encryption of API records."""

import copy
from datetime import datetime, timezone

import pytest

from e2ee import symmetric
from e2ee.exceptions import FieldDecryptError, KeyMaterialError
from e2ee.fields import (
    decrypt_fields,
    encrypt_fields,
    json_default,
    recursively_apply,
    rehydrate_dates,
)
from e2ee.keypair import KeyPair


@pytest.fixture
def key():
    return symmetric.generate()


@pytest.fixture
def record():
    return {
        "id": "card-1",
        "name": "Launch plan",
        "position": 3,
        "archived": False,
        "checklist": [
            {"id": "item-1", "text": "Write copy", "done": True},
            {"id": "item-2", "text": "Book venue", "done": False},
        ],
        "payload": {"blocks": [{"type": "paragraph", "value": "hi"}]},
        "owner": {"id": "user-1", "name": "Ada", "title": None},
    }


class TestSelectivity:

    def test_only_listed_fields_change(self, key, record):
        encrypted = encrypt_fields(record, key)

        assert encrypted["id"] == "card-1"
        assert encrypted["position"] == 3
        assert encrypted["archived"] is False
        assert encrypted["checklist"][0]["done"] is True
        assert encrypted["owner"]["id"] == "user-1"

        assert encrypted["name"] != "Launch plan"
        assert encrypted["checklist"][1]["text"] != "Book venue"
        assert encrypted["owner"]["name"] != "Ada"
        assert isinstance(encrypted["payload"], str)

    def test_null_fields_are_left_alone(self, key, record):
        assert encrypt_fields(record, key)["owner"]["title"] is None

    def test_input_is_not_modified(self, key, record):
        original = copy.deepcopy(record)
        encrypt_fields(record, key)
        assert record == original

    def test_round_trip(self, key, record):
        assert decrypt_fields(encrypt_fields(record, key), key) == record

    def test_round_trip_with_key_pair(self, record):
        key_pair = KeyPair.generate()
        assert decrypt_fields(encrypt_fields(record, key_pair), key_pair) == record

    def test_lists_at_top_level(self, key):
        records = [{"name": "a"}, {"name": "b"}]
        assert decrypt_fields(encrypt_fields(records, key), key) == records

    def test_primitives_pass_through(self, key):
        assert encrypt_fields("plain", key) == "plain"
        assert encrypt_fields(None, key) is None

    def test_unsupported_value_raises(self, key):
        with pytest.raises(TypeError):
            encrypt_fields({"tags": {"a", "b"}}, key)


class TestValueTypes:

    def test_scalar_in_encrypted_field_becomes_string(self, key):
        decrypted = decrypt_fields(encrypt_fields({"priority": 2}, key), key)
        assert decrypted == {"priority": "2"}

    def test_json_field_with_dates(self, key):
        when = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
        decrypted = decrypt_fields(encrypt_fields({"payload": {"due": when}}, key), key)
        assert decrypted == {"payload": {"due": "2024-05-01T12:30:00.000Z"}}

    def test_container_in_plain_field_raises(self, key):
        with pytest.raises(TypeError):
            encrypt_fields({"title": {"nested": "object"}}, key)


class TestDates:

    def test_date_fields_are_rehydrated_on_decrypt(self, key):
        decrypted = decrypt_fields({"createdAt": "2024-01-02T03:04:05.000Z", "id": "x"}, key)
        assert decrypted["createdAt"] == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert decrypted["id"] == "x"

    def test_unparseable_date_stays_string(self, key):
        assert decrypt_fields({"updatedAt": "not a date"}, key) == {"updatedAt": "not a date"}

    def test_response_dates_include_trial_end(self):
        data = rehydrate_dates([{"trialEnd": "2025-01-01T00:00:00Z", "name": "2025-01-01T00:00:00Z"}])
        assert isinstance(data[0]["trialEnd"], datetime)
        assert data[0]["name"] == "2025-01-01T00:00:00Z"

    def test_json_default_uses_utc_z_suffix(self):
        when = datetime(2024, 1, 1, 1, 0, tzinfo=timezone.utc)
        assert json_default(when) == "2024-01-01T01:00:00.000Z"

    def test_date_like_encrypted_text_stays_text(self, key):
        stamp = "2024-01-01T00:00:00.000Z"
        encrypted = encrypt_fields({"name": stamp, "createdAt": stamp}, key)
        decrypted = decrypt_fields(encrypted, key)
        assert decrypted["name"] == stamp
        assert isinstance(decrypted["createdAt"], datetime)


class TestPartialFailure:

    def test_failed_field_keeps_raw_value(self, key):
        good = encrypt_fields({"name": "Board", "description": "Plans"}, key)
        good["description"] = "corrupted"

        errors = []
        decrypted = decrypt_fields(good, key, on_error=errors.append)

        assert decrypted["name"] == "Board"
        assert decrypted["description"] == "corrupted"
        assert len(errors) == 1
        assert isinstance(errors[0], FieldDecryptError)
        assert errors[0].field == "description"

    def test_failure_is_logged(self, key, caplog):
        decrypt_fields({"title": "garbage"}, key)
        assert "title" in caplog.text

    def test_field_encrypted_under_other_key(self, key):
        other = KeyPair.generate()
        record = encrypt_fields({"label": "urgent", "color": "red"}, other)
        record["color"] = encrypt_fields({"color": "red"}, KeyPair.generate())["color"]

        errors = []
        decrypted = decrypt_fields(record, other, on_error=errors.append)
        assert decrypted["label"] == "urgent"
        assert [e.field for e in errors] == ["color"]

    def test_write_only_key_cannot_decrypt(self, key):
        owner = KeyPair.generate()
        write_only = KeyPair.from_public_key(owner.public_key)
        with pytest.raises(KeyMaterialError):
            decrypt_fields(encrypt_fields({"name": "x"}, write_only), write_only)


class TestRecursivelyApply:

    def test_custom_transforms(self):
        data = {"name": "abc", "nested": {"title": "def", "other": "ghi"}}
        assert recursively_apply(data, encrypt=str.upper) == {
            "name": "ABC",
            "nested": {"title": "DEF", "other": "ghi"},
        }

    def test_empty_encrypted_value_is_not_decrypted(self):
        calls = []
        recursively_apply({"name": ""}, decrypt=lambda v: calls.append(v) or v)
        assert calls == []
