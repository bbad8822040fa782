import pytest

from authflow.auth.password import SecretHasher, validate_password_strength
from authflow.core.errors import ValidationError


@pytest.fixture
def hasher():
    return SecretHasher(time_cost=1, memory_cost=8192, parallelism=1, min_length=8)


def test_same_password_hashes_differently_and_both_verify(hasher):
    first = hasher.hash("Secret123!")
    second = hasher.hash("Secret123!")

    assert first != second
    assert hasher.verify("Secret123!", first)
    assert hasher.verify("Secret123!", second)


def test_hash_never_contains_plaintext(hasher):
    stored = hasher.hash("Secret123!")
    assert stored != "Secret123!"
    assert "Secret123!" not in stored
    assert stored.startswith("$argon2id$")


def test_wrong_password_does_not_verify(hasher):
    stored = hasher.hash("Secret123!")
    assert not hasher.verify("secret123!", stored)
    assert not hasher.verify("", stored)


def test_malformed_hash_is_a_mismatch_not_an_error(hasher):
    assert not hasher.verify("Secret123!", "not-a-hash")
    assert not hasher.verify("Secret123!", "")


@pytest.mark.parametrize("plaintext", ["", "short1"])
def test_rejects_empty_or_short_plaintext(hasher, plaintext):
    with pytest.raises(ValidationError):
        hasher.hash(plaintext)


def test_needs_rehash_when_parameters_change(hasher):
    stored = hasher.hash("Secret123!")
    assert not hasher.needs_rehash(stored)

    stronger = SecretHasher(time_cost=2, memory_cost=8192, parallelism=1)
    assert stronger.needs_rehash(stored)
    # Old hashes keep verifying after the upgrade
    assert stronger.verify("Secret123!", stored)


def test_dummy_verify_does_not_raise(hasher):
    hasher.dummy_verify("anything")
    hasher.dummy_verify("")


def test_password_strength():
    assert validate_password_strength("Secret123!") == []

    issues = validate_password_strength("abc", min_length=8)
    assert any("at least 8 characters" in i for i in issues)
    assert any("digit" in i for i in issues)

    assert any("letter" in i for i in validate_password_strength("1234567890"))
    assert any("whitespace" in i for i in validate_password_strength(" Secret123 "))


def test_rehash_skips_length_policy():
    strict = SecretHasher(time_cost=1, memory_cost=8192, parallelism=1, min_length=12)

    with pytest.raises(ValidationError):
        strict.hash("Short123")
    assert strict.verify("Short123", strict.rehash("Short123"))
