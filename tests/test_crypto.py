"""
Tests for field-level secret encryption.
"""

import pytest
from cryptography.fernet import Fernet

from opsconsole import crypto


@pytest.fixture
def cipher(monkeypatch):
    monkeypatch.setattr(crypto, "_fernet", Fernet(Fernet.generate_key()))
    yield
    crypto.reset_cipher()


def test_roundtrip_with_key(cipher):
    token = crypto.encrypt_value("service-account-json")
    assert token != "service-account-json"
    assert crypto.decrypt_value(token) == "service-account-json"


def test_legacy_plaintext_is_returned_as_is(cipher):
    assert crypto.decrypt_value("not-ciphertext") == "not-ciphertext"


def test_empty_values_pass_through(cipher):
    assert crypto.encrypt_value(None) is None
    assert crypto.encrypt_value("") == ""
    assert crypto.decrypt_value(None) is None


def test_without_key_development_stores_plaintext():
    crypto.reset_cipher()
    assert crypto.encrypt_value("plain") == "plain"
    assert crypto.decrypt_value("plain") == "plain"
