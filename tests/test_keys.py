"""Tests for key strings and key providers."""

import pytest

from chunkvault.errors import ConfigurationError
from chunkvault.keys import (
    PRIVATE_PREFIX, PUBLIC_PREFIX, EnvKeyProvider, StaticKeyProvider,
    generate_keypair, load_private_key, load_public_key, public_key_from_private,
)


class TestKeyStrings:
    """Tests for generating and parsing key strings."""

    def test_generate_keypair(self):
        public_key, private_key = generate_keypair()

        assert public_key.startswith(PUBLIC_PREFIX)
        assert private_key.startswith(PRIVATE_PREFIX)
        assert generate_keypair() != (public_key, private_key)

    def test_keys_parse(self, keypair):
        public_key, private_key = keypair

        load_public_key(public_key)
        load_private_key(private_key)

    def test_public_key_from_private(self, keypair):
        public_key, private_key = keypair
        assert public_key_from_private(private_key) == public_key

    @pytest.mark.parametrize("bad", [
        "",
        "cvsec1AAAA",
        "cvpub1",
        "cvpub1AAAA",
        "ssh-ed25519 AAAAC3Nza",
    ])
    def test_malformed_public_key(self, bad):
        with pytest.raises(ConfigurationError):
            load_public_key(bad)

    def test_public_key_is_not_a_private_key(self, keypair):
        public_key, _ = keypair

        with pytest.raises(ConfigurationError, match="prefix"):
            load_private_key(public_key)


class TestKeyProviders:
    """Tests for StaticKeyProvider and EnvKeyProvider."""

    def test_static_provider(self, keypair):
        public_key, private_key = keypair
        provider = StaticKeyProvider(public_key=public_key, private_key=private_key)

        assert provider.public_key() == public_key
        assert provider.private_key() == private_key

    def test_static_provider_missing_keys(self):
        provider = StaticKeyProvider()

        with pytest.raises(ConfigurationError):
            provider.public_key()
        with pytest.raises(ConfigurationError):
            provider.private_key()

    def test_env_provider(self, keypair, monkeypatch):
        public_key, private_key = keypair
        monkeypatch.setenv("CHUNKVAULT_PUBLIC_KEY", public_key)
        monkeypatch.setenv("CHUNKVAULT_PRIVATE_KEY", private_key)

        provider = EnvKeyProvider()

        assert provider.public_key() == public_key
        assert provider.private_key() == private_key

    def test_env_provider_missing_keys(self):
        provider = EnvKeyProvider()

        with pytest.raises(ConfigurationError, match="CHUNKVAULT_PUBLIC_KEY"):
            provider.public_key()
        with pytest.raises(ConfigurationError, match="CHUNKVAULT_PRIVATE_KEY"):
            provider.private_key()
