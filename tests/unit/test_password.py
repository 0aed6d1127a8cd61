"""Tests for argon2 password hashing and strength rules."""

import pytest

from ednova.auth.password import (
    PasswordStrengthError,
    check_needs_rehash,
    hash_password,
    validate_password_strength,
    verify_password,
)


class TestHashing:
    def test_hash_and_verify(self):
        hashed = hash_password("SecureP4ss")
        assert hashed.startswith("$argon2id$")
        assert verify_password("SecureP4ss", hashed)
        assert not verify_password("WrongP4ss", hashed)

    def test_hashes_are_salted(self):
        assert hash_password("SecureP4ss") != hash_password("SecureP4ss")

    def test_garbage_hash_does_not_verify(self):
        assert not verify_password("SecureP4ss", "not-a-hash")

    def test_fresh_hash_needs_no_rehash(self):
        assert not check_needs_rehash(hash_password("SecureP4ss"))


class TestStrength:
    def test_strong_password_passes(self):
        validate_password_strength("SecureP4ss")

    @pytest.mark.parametrize("password", ["Sh0rt", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(PasswordStrengthError):
            validate_password_strength(password)

    def test_strength_error_is_value_error(self):
        assert issubclass(PasswordStrengthError, ValueError)
