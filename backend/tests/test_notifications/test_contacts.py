"""
Tests for customer contact resolution.
"""

import pytest

from recycletrade.services.notifications.contacts import (
    GUEST_FALLBACK_NAME,
    dedupe_name,
    normalize_phone,
    resolve_customer_contact,
)
from tests.factories import make_user


class TestDedupeName:
    def test_plain_first_and_last(self):
        assert dedupe_name("Ada", "Lovelace") == "Ada Lovelace"

    def test_repeated_surname_is_dropped(self):
        assert dedupe_name("Jane Doe", "Doe") == "Jane Doe"

    def test_comparison_ignores_case(self):
        assert dedupe_name("jane DOE", "Doe") == "jane DOE"

    def test_missing_parts(self):
        assert dedupe_name(None, "Hopper") == "Hopper"
        assert dedupe_name(None, None) == ""


class TestNormalizePhone:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("+44 20 7946 0958", "+442079460958"),
            ("0044 20 7946 0958", "+442079460958"),
            ("(555) 010-2000", "+15550102000"),
            ("555 010 2000", "+15550102000"),
            ("05550102000", "+15550102000"),
        ],
    )
    def test_normalizes_to_e164(self, raw, expected):
        assert normalize_phone(raw) == expected

    def test_default_country_code(self):
        assert normalize_phone("612 345 678", default_country_code="34") == "+34612345678"

    @pytest.mark.parametrize("raw", [None, "", "ext.", "12", "+1234567890123456"])
    def test_unusable_numbers(self, raw):
        assert normalize_phone(raw) is None


class TestResolveCustomerContact:
    def test_registered_user(self):
        user = make_user(first_name="Jane Doe", last_name="Doe", email="jane@example.com")

        contact = resolve_customer_contact(user=user)

        assert contact.name == "Jane Doe"
        assert contact.email == "jane@example.com"
        assert contact.phone == user.phone
        assert contact.address is None

    def test_guest_with_structured_address(self):
        contact = resolve_customer_contact(
            guest_info={
                "first_name": "Grace",
                "last_name": "Hopper",
                "email": "grace@example.com",
                "address": {"street": "1 Navy Way", "city": "Arlington", "state": "VA"},
            }
        )

        assert contact.name == "Grace Hopper"
        assert contact.address == "1 Navy Way, Arlington, VA"
        assert contact.has_email

    def test_guest_with_single_name_field(self):
        contact = resolve_customer_contact(guest_info={"name": "Alan Turing", "email": "alan@example.com"})

        assert contact.name == "Alan Turing"

    def test_nameless_guest_gets_fallback(self):
        contact = resolve_customer_contact(guest_info={"email": ""})

        assert contact.name == GUEST_FALLBACK_NAME
        assert contact.email is None
        assert not contact.has_email

    def test_no_customer_at_all(self):
        assert resolve_customer_contact().name == GUEST_FALLBACK_NAME
