"""
Unit tests for symmetric, asymmetric and passphrase key wrapping.
"""

import pytest

from sealbox.core.exceptions import (
    GENERIC_CREDENTIAL_MESSAGE,
    InvalidPassphrase,
    KeyTypeMismatch,
    UnwrapFailed,
)
from sealbox.core.models import Algorithm, DerivationParams, KeyMaterial, KeyUsage
from sealbox.security.envelope import open_, seal
from sealbox.security.keys import generate_ec_keypair, generate_ed25519_keypair, generate_rsa_keypair
from sealbox.security.keywrap import (
    AsymmetricKeyWrapper,
    KeyWrapper,
    PassphraseKeyWrapper,
    PassphraseWrap,
    generate_cek,
)
from sealbox.security.primitives import EcdhP256Cipher


# ==============================================================================
# Fixtures
# ==============================================================================

@pytest.fixture
def params():
    return DerivationParams(time_cost=3, memory_cost=4096, parallelism=1, output_length=64, version=0x13)


@pytest.fixture
def kek():
    return KeyMaterial.generate(Algorithm.AES_256_KW)


@pytest.fixture(scope="module")
def rsa_pair():
    return generate_rsa_keypair(2048)


@pytest.fixture
def passphrase_wrapper(params):
    return PassphraseKeyWrapper(params)


# ==============================================================================
# Tests: KeyWrapper (AES-KW)
# ==============================================================================

def test_aes_kw_round_trip(kek):
    cek = generate_cek()
    wrapped = KeyWrapper().wrap(kek, cek)
    # RFC 3394 adds one 8-byte block
    assert len(wrapped) == 40
    assert KeyWrapper().unwrap(kek, wrapped, Algorithm.AES_256_GCM) == cek


def test_aes_kw_is_deterministic(kek):
    cek = generate_cek()
    assert KeyWrapper().wrap(kek, cek) == KeyWrapper().wrap(kek, cek)


def test_unwrapped_key_carries_requested_binding(kek):
    cek = generate_cek()
    wrapped = KeyWrapper().wrap(kek, cek)
    out = KeyWrapper().unwrap(kek, wrapped, Algorithm.AES_256_GCM, {KeyUsage.DECRYPT})
    assert out.usages == {KeyUsage.DECRYPT}


def test_unwrap_with_wrong_kek_fails(kek):
    wrapped = KeyWrapper().wrap(kek, generate_cek())
    with pytest.raises(UnwrapFailed) as excinfo:
        KeyWrapper().unwrap(KeyMaterial.generate(Algorithm.AES_256_KW), wrapped, Algorithm.AES_256_GCM)
    assert str(excinfo.value) == GENERIC_CREDENTIAL_MESSAGE


def test_unwrap_tampered_blob_fails(kek):
    wrapped = bytearray(KeyWrapper().wrap(kek, generate_cek()))
    wrapped[5] ^= 0xFF
    with pytest.raises(UnwrapFailed):
        KeyWrapper().unwrap(kek, bytes(wrapped), Algorithm.AES_256_GCM)


def test_unwrap_length_mismatch_with_declared_algorithm(kek):
    wrapped = KeyWrapper().wrap(kek, generate_cek(Algorithm.AES_128_GCM))
    with pytest.raises(KeyTypeMismatch):
        KeyWrapper().unwrap(kek, wrapped, Algorithm.AES_256_GCM)


def test_data_key_cannot_be_kek():
    data_key = KeyMaterial.generate(Algorithm.AES_256_GCM)
    with pytest.raises(KeyTypeMismatch):
        KeyWrapper().wrap(data_key, generate_cek())


def test_wrap_only_kek_cannot_unwrap():
    wrap_only = KeyMaterial.generate(Algorithm.AES_256_KW, {KeyUsage.WRAP})
    wrapped = KeyWrapper().wrap(wrap_only, generate_cek())
    with pytest.raises(KeyTypeMismatch):
        KeyWrapper().unwrap(wrap_only, wrapped, Algorithm.AES_256_GCM)


def test_aes_128_kek():
    small = KeyMaterial.generate(Algorithm.AES_128_KW)
    cek = generate_cek()
    assert KeyWrapper().unwrap(small, KeyWrapper().wrap(small, cek), Algorithm.AES_256_GCM) == cek


# ==============================================================================
# Tests: AsymmetricKeyWrapper
# ==============================================================================

def test_rsa_oaep_round_trip(rsa_pair):
    private_key, public_key = rsa_pair
    cek = generate_cek()
    wrapped = AsymmetricKeyWrapper().wrap(public_key, cek)
    assert len(wrapped) == 256
    assert AsymmetricKeyWrapper().unwrap(private_key, wrapped, Algorithm.AES_256_GCM) == cek


def test_rsa_oaep_is_randomized(rsa_pair):
    _, public_key = rsa_pair
    cek = generate_cek()
    wrapper = AsymmetricKeyWrapper()
    assert wrapper.wrap(public_key, cek) != wrapper.wrap(public_key, cek)


def test_rsa_wrong_private_key_fails(rsa_pair):
    _, public_key = rsa_pair
    other_private, _ = generate_rsa_keypair(2048)
    wrapped = AsymmetricKeyWrapper().wrap(public_key, generate_cek())
    with pytest.raises(UnwrapFailed):
        AsymmetricKeyWrapper().unwrap(other_private, wrapped, Algorithm.AES_256_GCM)


def test_rsa_wrapper_rejects_other_key_types():
    _, ed_public = generate_ed25519_keypair()
    with pytest.raises(KeyTypeMismatch):
        AsymmetricKeyWrapper().wrap(ed_public, generate_cek())


def test_ecdh_p256_round_trip():
    private_key, public_key = generate_ec_keypair()
    wrapper = AsymmetricKeyWrapper(EcdhP256Cipher())
    cek = generate_cek()
    wrapped = wrapper.wrap(public_key, cek)
    assert len(wrapped) == 65 + 40
    assert wrapper.unwrap(private_key, wrapped, Algorithm.AES_256_GCM) == cek
    assert wrapper.name == "ECDH-ES-P256+A256KW"


def test_ecdh_p256_truncated_fails():
    private_key, public_key = generate_ec_keypair()
    wrapper = AsymmetricKeyWrapper(EcdhP256Cipher())
    wrapped = wrapper.wrap(public_key, generate_cek())
    with pytest.raises(UnwrapFailed):
        wrapper.unwrap(private_key, wrapped[:60], Algorithm.AES_256_GCM)


# ==============================================================================
# Tests: PassphraseKeyWrapper
# ==============================================================================

def test_passphrase_round_trip(passphrase_wrapper):
    cek = generate_cek()
    record = passphrase_wrapper.wrap("hunter2", cek)
    assert len(record.salt) == 16
    assert len(record.verifier) == 32
    out = passphrase_wrapper.unwrap("hunter2", record, Algorithm.AES_256_GCM)
    assert out == cek
    assert open_(out, seal(cek, b"data")) == b"data"


def test_fresh_salt_each_wrap(passphrase_wrapper):
    cek = generate_cek()
    a = passphrase_wrapper.wrap("pw", cek)
    b = passphrase_wrapper.wrap("pw", cek)
    assert a.salt != b.salt
    assert a.wrapped_key != b.wrapped_key


def test_wrong_passphrase_is_invalid_passphrase(passphrase_wrapper):
    record = passphrase_wrapper.wrap("right", generate_cek())
    with pytest.raises(InvalidPassphrase) as excinfo:
        passphrase_wrapper.unwrap("wrong", record, Algorithm.AES_256_GCM)
    assert str(excinfo.value) == GENERIC_CREDENTIAL_MESSAGE


def test_corrupted_wrapped_key_is_unwrap_failed(passphrase_wrapper):
    record = passphrase_wrapper.wrap("right", generate_cek())
    bad = bytearray(record.wrapped_key)
    bad[0] ^= 1
    tampered = PassphraseWrap(record.salt, bytes(bad), record.verifier, record.params)
    with pytest.raises(UnwrapFailed) as excinfo:
        passphrase_wrapper.unwrap("right", tampered, Algorithm.AES_256_GCM)
    # same wording as a wrong passphrase
    assert str(excinfo.value) == GENERIC_CREDENTIAL_MESSAGE


def test_unwrap_uses_stored_params(params):
    cek = generate_cek()
    record = PassphraseKeyWrapper(params).wrap("pw", cek)
    stronger = DerivationParams(time_cost=4, memory_cost=8192, parallelism=1, output_length=64, version=0x13)
    assert PassphraseKeyWrapper(stronger).unwrap("pw", record, Algorithm.AES_256_GCM) == cek


def test_verify(passphrase_wrapper):
    record = passphrase_wrapper.wrap("pw", generate_cek())
    assert passphrase_wrapper.verify("pw", record) is True
    assert passphrase_wrapper.verify("nope", record) is False


def test_output_too_short_for_verifier():
    short = DerivationParams(time_cost=3, memory_cost=4096, parallelism=1, output_length=32, version=0x13)
    with pytest.raises(ValueError, match="verifier"):
        PassphraseKeyWrapper(short)


@pytest.mark.parametrize("operation", ["verify", "unwrap"])
def test_record_with_short_output_rejected(passphrase_wrapper, operation):
    record = passphrase_wrapper.wrap("pw", generate_cek())
    short = DerivationParams(time_cost=3, memory_cost=4096, parallelism=1, output_length=32, version=0x13)
    stale = PassphraseWrap(record.salt, record.wrapped_key, record.verifier, short)
    args = ("pw", stale) if operation == "verify" else ("pw", stale, Algorithm.AES_256_GCM)
    with pytest.raises(ValueError, match="output_length must be"):
        getattr(passphrase_wrapper, operation)(*args)


def test_record_dict_round_trip(passphrase_wrapper):
    record = passphrase_wrapper.wrap("pw", generate_cek())
    assert PassphraseWrap.from_dict(record.to_dict()) == record
