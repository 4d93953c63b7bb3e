"""End-to-end tests for payload sanitization and decoding."""

import copy
import logging

import pytest
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from pii_masking.errors import ConfigurationError, DecryptionFailed, MalformedToken
from pii_masking.sanitizer import MaskRecord, Sanitizer, format_path, mask_record_to_dict
from pii_masking.token_codec import derive_key, looks_like_token

SECRET = "thisisseceretkeyforme"

SIGNUP_BODY = {
    "username": "JohnDoe",
    "password": "mysecretpass",
    "email": "john@example.com",
    "phone": "9876543210",
}


def _sanitizer(**cfg) -> Sanitizer:
    return Sanitizer({"signingSecret": SECRET, **cfg})


def invalid_utf8_token(secret: str) -> str:
    """A well-formed token whose plaintext bytes are not valid UTF-8."""
    iv = bytes(16)
    encryptor = Cipher(algorithms.AES(derive_key(secret)), modes.CTR(iv)).encryptor()
    return iv.hex() + ":" + (encryptor.update(b"\xff\xfe") + encryptor.finalize()).hex()


def test_constructor_requires_secret():
    with pytest.raises(ConfigurationError):
        Sanitizer({"signingSecret": ""})
    with pytest.raises(ConfigurationError):
        Sanitizer(None)


def test_explicit_fields_end_to_end():
    s = _sanitizer(fieldsToSanitize=["password", "email"])

    out = s.sanitize_object(SIGNUP_BODY, "/signup")

    assert out["username"] == "JohnDoe"
    assert out["phone"] == "9876543210"
    assert looks_like_token(out["password"])
    assert looks_like_token(out["email"])
    assert s.decode_body(out) == SIGNUP_BODY


def test_explicit_field_is_masked_even_if_it_does_not_look_sensitive():
    s = _sanitizer(fieldsToSanitize=["password"])
    out = s.sanitize_object({"password": "plain", "email": "john@example.com"}, "/")
    assert looks_like_token(out["password"])
    assert out["email"] == "john@example.com"


def test_auto_detect_end_to_end():
    s = _sanitizer()

    out = s.sanitize_object(SIGNUP_BODY, "/signup")

    assert out["username"] == "JohnDoe"
    for key in ("password", "email", "phone"):
        assert looks_like_token(out[key])
    assert s.decode_body(out) == SIGNUP_BODY


def test_skip_beats_everything():
    s = _sanitizer(fieldsToSkip=["email"], fieldsToSanitize=["email"], regexToSanitize=["@"])
    out = s.sanitize_object({"email": "john@example.com"}, "/")
    assert out == {"email": "john@example.com"}


def test_out_of_scope_route_returns_input_object():
    s = _sanitizer(allowlistRoutes=["/signup"])
    out = s.sanitize_object(SIGNUP_BODY, "/login")
    assert out is SIGNUP_BODY


def test_disabled_sanitizer_returns_input_object():
    s = _sanitizer(disable=True)
    assert s.sanitize_object(SIGNUP_BODY, "/signup") is SIGNUP_BODY


def test_regex_masks_only_matches():
    s = _sanitizer(regexToSanitize=[r"\d{10}"])

    out = s.sanitize_object({"phone": "9876543210 call me"}, "/")

    token, rest = out["phone"].split(" ", 1)
    assert rest == "call me"
    assert looks_like_token(token)
    assert s.decode_body(out) == {"phone": "9876543210 call me"}


def test_token_in_the_middle_of_text_decodes_in_place():
    s = _sanitizer(regexToSanitize=[r"\d{10}"])

    out = s.sanitize_object({"note": "call 9876543210 now"}, "/")

    assert out["note"].startswith("call ")
    assert out["note"].endswith(" now")
    assert s.decode_body(out) == {"note": "call 9876543210 now"}


def test_lookbehind_pattern_ignores_zero_length_matches():
    s = _sanitizer(regexToSanitize=[r"(?<=-)x*"])

    assert s.sanitize_object({"s": "abc"}, "/") == {"s": "abc"}

    out = s.sanitize_object({"s": "-xx b"}, "/")
    assert out["s"].startswith("-")
    assert out["s"].endswith(" b")
    assert s.decode_body(out) == {"s": "-xx b"}


def test_repeated_regex_matches_get_independent_tokens():
    s = _sanitizer(regexToSanitize=[r"\d{10}"])

    out = s.sanitize_object({"note": "9876543210 or 9876543210"}, "/")

    first, _, second = out["note"].split(" ")
    assert first != second
    assert s.decode_value(first) == s.decode_value(second) == "9876543210"


def test_nested_structures_are_walked_and_rebuilt():
    s = _sanitizer(fieldsToSanitize=["email"])
    body = {
        "user": {"email": "a@b.co", "age": 30, "active": True, "nick": None},
        "email": ["x@y.io", "z@w.io"],
        "tags": ["email", 7],
    }
    original = copy.deepcopy(body)

    out = s.sanitize_object(body, "/")

    assert body == original
    assert out["user"] is not body["user"]
    assert looks_like_token(out["user"]["email"])
    assert out["user"]["age"] == 30
    assert out["user"]["active"] is True
    assert out["user"]["nick"] is None
    # list items inherit the name of the field holding the list
    assert all(looks_like_token(v) for v in out["email"])
    assert out["tags"] == ["email", 7]
    assert s.decode_body(out) == body


def test_tuples_come_back_as_lists():
    s = _sanitizer(fieldsToSanitize=["emails"])

    out = s.sanitize_object({"emails": ("a@b.co", "c@d.io")}, "/")

    assert isinstance(out["emails"], list)
    assert s.decode_body(out) == {"emails": ["a@b.co", "c@d.io"]}


def test_phone_field_with_card_value_is_masked_by_phone_detector():
    s = _sanitizer(detectors=["phone"])
    out = s.sanitize_object({"phone": "4111111111111111", "card": "4111111111111111"}, "/")
    assert looks_like_token(out["phone"])
    assert out["card"] == "4111111111111111"


def test_key_order_is_preserved():
    s = _sanitizer()
    out = s.sanitize_object({"b": "1", "a": "2", "c": "x"}, "/")
    assert list(out) == ["b", "a", "c"]


def test_non_container_scalars_pass_through():
    s = _sanitizer()
    assert s.sanitize_object(42, "/") == 42
    assert s.sanitize_object(None, "/") is None


def test_report_collects_mask_records():
    s = _sanitizer(fieldsToSanitize=["password"], regexToSanitize=[r"\d{10}"])
    report = []

    s.sanitize_object({"password": "pw", "notes": ["9876543210 and 9123456789"]}, "/", report=report)

    assert MaskRecord(("password",), "password", "password", "field") in report
    regex_records = [r for r in report if r.rule == "regex"]
    assert len(regex_records) == 2
    assert format_path(regex_records[0].path) == "$.notes[0]"
    assert mask_record_to_dict(regex_records[0]) == {
        "path": "$.notes[0]",
        "field": "notes",
        "type": "custom",
        "rule": "regex",
    }


def test_decode_leaves_non_tokens_alone():
    s = _sanitizer()
    assert s.decode_body({"name": "JohnDoe", "n": 1, "list": ["x", None]}) == {
        "name": "JohnDoe",
        "n": 1,
        "list": ["x", None],
    }


def test_decode_raises_on_colon_string_by_default():
    s = _sanitizer()
    with pytest.raises(MalformedToken):
        s.decode_body({"time": "10:30"})


def test_decode_propagates_decryption_failure():
    s = _sanitizer()

    with pytest.raises(DecryptionFailed):
        s.decode_body({"password": invalid_utf8_token(SECRET)})


def test_decode_non_strict_leaves_undecodable_strings(caplog):
    s = _sanitizer()
    token = s.encode_value("john@example.com")

    with caplog.at_level(logging.WARNING, logger="pii_masking.sanitizer"):
        out = s.decode_body({"time": "10:30", "email": token}, strict=False)

    assert out == {"time": "10:30", "email": "john@example.com"}
    assert "10:30" not in caplog.text


def test_decode_with_other_secret_does_not_recover_value():
    token = _sanitizer().encode_value("mysecretpass")
    other = Sanitizer({"signingSecret": "different"})
    try:
        assert other.decode_body({"password": token}) != {"password": "mysecretpass"}
    except DecryptionFailed:
        pass


def test_sanitizer_from_json(tmp_path):
    path = tmp_path / "cfg.json"
    path.write_text('{"signingSecret": "s", "fieldsToSanitize": ["email"]}', encoding="utf-8")

    s = Sanitizer.from_json(str(path))

    assert s.config.fields_to_sanitize == frozenset({"email"})
