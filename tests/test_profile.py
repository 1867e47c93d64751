"""Tests for profile normalization."""

from __future__ import annotations

import json

import pytest

from paypal_identity.exceptions import MalformedProfileError, ProfileError
from paypal_identity.profile import normalize_profile

JANE = {
    "user_id": "U1",
    "name": "Jane Doe",
    "given_name": "Jane",
    "family_name": "Doe",
    "email": "j@x.com",
}


class TestNormalizeProfile:
    def test_canonical_mapping(self) -> None:
        profile = normalize_profile(json.dumps(JANE))

        assert profile.provider == "paypal"
        assert profile.id == "U1"
        assert profile.display_name == "Jane Doe"
        assert profile.name.given_name == "Jane"
        assert profile.name.family_name == "Doe"
        assert profile.name.formatted == "Jane Doe"
        assert profile.emails == ["j@x.com"]
        assert profile.country is None

    def test_raw_and_parsed_claims_kept(self) -> None:
        body = json.dumps({**JANE, "verified_account": "true"})

        profile = normalize_profile(body)

        assert profile.raw == body
        assert profile.raw_json["verified_account"] == "true"

    def test_country_from_address(self) -> None:
        profile = normalize_profile({**JANE, "address": {"country": "US", "postal_code": "95131"}})
        assert profile.country == "US"

    def test_missing_claims_are_absent_not_errors(self) -> None:
        profile = normalize_profile("{}")

        assert profile.id is None
        assert profile.display_name is None
        assert profile.name.formatted is None
        assert profile.emails == []
        assert profile.country is None

    def test_empty_email_gives_no_emails(self) -> None:
        assert normalize_profile({**JANE, "email": ""}).emails == []

    def test_bytes_body(self) -> None:
        assert normalize_profile(json.dumps(JANE).encode()).id == "U1"

    def test_same_claims_same_profile(self) -> None:
        body = json.dumps(JANE)
        assert normalize_profile(body) == normalize_profile(body)

    def test_dict_claims(self) -> None:
        profile = normalize_profile(JANE)

        assert profile.id == "U1"
        assert json.loads(profile.raw) == JANE

    @pytest.mark.parametrize("body", ["not json", "[1, 2]", '"text"', ""])
    def test_malformed_claims(self, body: str) -> None:
        with pytest.raises(MalformedProfileError):
            normalize_profile(body)

    def test_unserializable_dict_claims(self) -> None:
        with pytest.raises(MalformedProfileError):
            normalize_profile({**JANE, "updated": object()})

    def test_malformed_is_a_profile_error(self) -> None:
        with pytest.raises(ProfileError):
            normalize_profile("<html>")
