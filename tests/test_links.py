"""Tests for room codes and shareable links."""

from __future__ import annotations

import pytest

from lanxfer.exceptions import InvalidRoomCodeError, InvalidShareLinkError
from lanxfer.models.room import (
    ROOM_CODE_ALPHABET,
    generate_room_code,
    is_valid_room_code,
    normalize_room_code,
    parse_room_code,
)
from lanxfer.services.crypto import encode_key, generate_key
from lanxfer.services.links import build_share_link, parse_share_link


class TestRoomCodes:
    def test_generated_codes_are_valid(self):
        for _ in range(50):
            code = generate_room_code()
            assert len(code) == 6
            assert set(code) <= set(ROOM_CODE_ALPHABET)
            assert is_valid_room_code(code)

    def test_alphabet_has_no_ambiguous_characters(self):
        assert not set("01IO") & set(ROOM_CODE_ALPHABET)

    def test_normalize(self):
        assert normalize_room_code("  ab12cd\n") == "AB12CD"

    @pytest.mark.parametrize("code", ["ab12cd", "AB12CD", " 000000 "])
    def test_valid_codes(self, code):
        assert is_valid_room_code(code)

    @pytest.mark.parametrize("code", ["", "ABC", "AB12CDE", "AB-2CD", "AB 2CD"])
    def test_invalid_codes(self, code):
        assert not is_valid_room_code(code)
        with pytest.raises(InvalidRoomCodeError):
            parse_room_code(code)

    def test_invalid_code_is_a_value_error(self):
        with pytest.raises(ValueError):
            parse_room_code("nope")


class TestShareLinks:
    def test_build_and_parse(self):
        key = generate_key()
        link = build_share_link("http://192.168.1.20:3000/", "ab12cd", key)

        assert link.startswith("http://192.168.1.20:3000/#code-AB12CD&key=")
        parsed = parse_share_link(link)
        assert parsed.room_code == "AB12CD"
        assert parsed.key == key

    def test_build_replaces_existing_fragment(self):
        link = build_share_link("http://host/#code-ZZZZZZ", "AB12CD")
        assert link == "http://host/#code-AB12CD"

    def test_parse_without_key(self):
        parsed = parse_share_link("http://host/#code-AB12CD")
        assert parsed.room_code == "AB12CD"
        assert parsed.key is None

    def test_parse_bare_fragment(self):
        key = generate_key()
        parsed = parse_share_link(f"code-ab12cd&key={encode_key(key)}")
        assert parsed.room_code == "AB12CD"
        assert parsed.key == key

    def test_parse_missing_code(self):
        with pytest.raises(InvalidShareLinkError):
            parse_share_link("http://host/#key=abc")

    def test_parse_invalid_code(self):
        with pytest.raises(InvalidShareLinkError):
            parse_share_link("http://host/#code-ABC")

    def test_parse_malformed_key(self):
        with pytest.raises(InvalidShareLinkError):
            parse_share_link("http://host/#code-AB12CD&key=tooshort")

    def test_build_rejects_invalid_code(self):
        with pytest.raises(InvalidRoomCodeError):
            build_share_link("http://host/", "bad code")
