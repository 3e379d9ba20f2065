import os

import pytest

from codegen_versions.errors import ConfigurationError, OrchestrationError, SecretsDecryptionError
from codegen_versions.services.secrets_codec import SecretsCodec

SECRETS = {
    "DATABASE_URL": "postgresql://owner:pw@ep-1/neondb",
    "STACK_SECRET_SERVER_KEY": "sk_ünïcode",
}


def test_bundle_round_trips_and_every_encryption_is_fresh(codec):
    first = codec.encrypt_bundle(SECRETS)
    second = codec.encrypt_bundle(SECRETS)

    assert first != second
    assert codec.decrypt_bundle(first) == SECRETS
    assert codec.decrypt_bundle(second) == SECRETS


def test_re_encrypting_a_decrypted_bundle_preserves_it(codec):
    ciphertext = codec.encrypt_bundle(SECRETS)
    for _ in range(3):
        ciphertext = codec.encrypt_bundle(codec.decrypt_bundle(ciphertext))

    assert codec.decrypt_bundle(ciphertext) == SECRETS


def test_wrong_key_cannot_decrypt(codec):
    other = SecretsCodec(os.urandom(32).hex())

    with pytest.raises(SecretsDecryptionError):
        other.decrypt(codec.encrypt("hello"))


def test_tampered_or_garbage_ciphertext_is_rejected(codec):
    with pytest.raises(SecretsDecryptionError):
        codec.decrypt("not base64 !!")
    with pytest.raises(SecretsDecryptionError):
        codec.decrypt("c2hvcnQ=")


@pytest.mark.parametrize("key", [None, "", "abcd", "zz" * 32])
def test_invalid_keys_are_configuration_errors(key):
    with pytest.raises(ConfigurationError):
        SecretsCodec(key)


def test_non_json_plaintext_is_a_decryption_error(codec):
    with pytest.raises(SecretsDecryptionError) as excinfo:
        codec.decrypt_bundle(codec.encrypt("DATABASE_URL=postgresql://"))

    assert isinstance(excinfo.value, OrchestrationError)


def test_non_mapping_bundle_is_a_decryption_error(codec):
    with pytest.raises(SecretsDecryptionError):
        codec.decrypt_bundle(codec.encrypt('["DATABASE_URL"]'))
