"""
Tests for owner profiles and recipient resolution
"""

import pytest

from vault_ledger.errors import NotFoundError, ValidationError
from vault_ledger.profiles import (
    ProfileStore, profile_to_dict, validate_recipient_identifier,
)
from vault_ledger.storage import InMemoryStorage

from conftest import FakeClock, make_config


class TestProfileStore:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.clock = FakeClock()
        self.profiles = ProfileStore(self.storage, make_config(), self.clock)

    def test_create_profile_generates_public_id(self):
        profile = self.profiles.create_profile("Alice", "Alice@Example.com")

        assert len(profile.public_id) == 6
        assert 100000 <= int(profile.public_id) <= 999999
        assert profile.email_normalized == "alice@example.com"
        assert profile.pension_target_year is None
        assert self.profiles.get_profile(profile.id).display_name == "Alice"

    def test_duplicate_email_rejected_case_insensitively(self):
        self.profiles.create_profile("Alice", "alice@example.com")
        with pytest.raises(ValidationError, match="already exists"):
            self.profiles.create_profile("Other", "ALICE@example.com")

    def test_duplicate_public_id_rejected(self):
        self.profiles.create_profile("Alice", "alice@example.com", public_id=123456)
        with pytest.raises(ValidationError, match="already taken"):
            self.profiles.create_profile("Bob", "bob@example.com", public_id="123456")

    def test_non_ascii_public_id_rejected(self):
        with pytest.raises(ValidationError, match="6-digit User ID"):
            self.profiles.create_profile("Alice", "alice@example.com", public_id="１２３４５６")
        assert self.profiles.find_by_email("alice@example.com") == []

    @pytest.mark.parametrize("email", ["", "not-an-email", "a@b", "a b@c.com", None])
    def test_invalid_email(self, email):
        with pytest.raises(ValidationError):
            self.profiles.create_profile("Alice", email)

    def test_blank_display_name(self):
        with pytest.raises(ValidationError):
            self.profiles.create_profile("  ", "alice@example.com")

    def test_unknown_profile(self):
        with pytest.raises(NotFoundError):
            self.profiles.get_profile("missing")

    def test_set_pension_target_year(self):
        profile = self.profiles.create_profile("Alice", "alice@example.com")

        updated = self.profiles.set_pension_target_year(profile.id, 2035)
        assert updated.pension_target_year == 2035

        # Re-setting is allowed
        updated = self.profiles.set_pension_target_year(profile.id, "2060")
        assert self.profiles.get_profile(profile.id).pension_target_year == 2060

    @pytest.mark.parametrize("year", [2034, 2106, "soon"])
    def test_pension_target_year_out_of_window(self, year):
        profile = self.profiles.create_profile("Alice", "alice@example.com")
        with pytest.raises(ValidationError):
            self.profiles.set_pension_target_year(profile.id, year)
        assert self.profiles.get_profile(profile.id).pension_target_year is None


class TestRecipientResolution:

    def setup_method(self):
        self.storage = InMemoryStorage()
        self.profiles = ProfileStore(self.storage, make_config(), FakeClock())
        self.bob = self.profiles.create_profile("Bob", "Bob@Example.com", public_id=654321)

    def test_by_public_id(self):
        assert self.profiles.resolve_recipient(public_id="654321").id == self.bob.id
        assert self.profiles.resolve_recipient(public_id=654321).id == self.bob.id

    def test_by_email_ignores_case(self):
        assert self.profiles.resolve_recipient(email=" bob@example.COM ").id == self.bob.id

    def test_unknown_recipient(self):
        with pytest.raises(NotFoundError, match="Recipient not found"):
            self.profiles.resolve_recipient(public_id=111111)
        with pytest.raises(NotFoundError, match="Recipient not found"):
            self.profiles.resolve_recipient(email="nobody@example.com")

    def test_ambiguous_recipient_is_not_found(self):
        clone = profile_to_dict(self.bob)
        clone["id"] = "clone"
        self.storage.save(self.profiles.table_name, "clone", clone)

        with pytest.raises(NotFoundError, match="Recipient not found"):
            self.profiles.resolve_recipient(public_id=654321)


class TestRecipientIdentifier:

    def test_exactly_one_required(self):
        with pytest.raises(ValidationError, match="not both"):
            validate_recipient_identifier(public_id="123456", email="a@b.com")
        with pytest.raises(ValidationError):
            validate_recipient_identifier()
        with pytest.raises(ValidationError):
            validate_recipient_identifier(public_id="", email="  ")

    @pytest.mark.parametrize("public_id", ["12345", "1234567", "099999", "abcdef", 1000000, True, "１２３４５６", "١٢٣٤٥٦"])
    def test_malformed_public_id(self, public_id):
        with pytest.raises(ValidationError):
            validate_recipient_identifier(public_id=public_id)

    def test_normalizes(self):
        assert validate_recipient_identifier(public_id=123456) == ("public_id", "123456")
        assert validate_recipient_identifier(email="A@B.com") == ("email", "a@b.com")
