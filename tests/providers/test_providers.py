"""
Tests for collaborator interfaces: token metadata, the secret provider and
the ledger factory loader.
"""

from decimal import Decimal

import pytest

from stakebot.providers import (
    EnvSecretProvider,
    SecretUnavailableError,
    TokenInfo,
    load_ledger_factory,
)


def build_ledger(signing_key, settings):
    return ("ledger", signing_key)


class Factories:
    build = staticmethod(build_ledger)


NOT_CALLABLE = 42


class TestTokenInfo:

    def test_defaults(self):
        token = TokenInfo()
        assert token.decimals == 18
        assert token.symbol == "TOKEN"

    @pytest.mark.parametrize(
        "decimals, amount, expected",
        [
            (18, 10**18, "1"),
            (18, 1, "0.000000000000000001"),
            (6, 1_500_000, "1.5"),
            (0, 42, "42"),
            (18, 0, "0"),
        ],
    )
    def test_format_amount(self, decimals, amount, expected):
        assert TokenInfo(decimals=decimals).format_amount(amount) == expected

    def test_to_decimal_is_exact(self):
        assert TokenInfo(decimals=18).to_decimal(123) == Decimal("1.23E-16")


class TestEnvSecretProvider:

    def test_reads_configured_variable(self, monkeypatch):
        monkeypatch.setenv("MY_BOT_KEY", "  0xabc  ")
        assert EnvSecretProvider("MY_BOT_KEY").obtain_signing_key() == "0xabc"

    def test_missing_key(self, monkeypatch):
        monkeypatch.delenv("MY_BOT_KEY", raising=False)
        with pytest.raises(SecretUnavailableError, match="MY_BOT_KEY"):
            EnvSecretProvider("MY_BOT_KEY").obtain_signing_key()


class TestLoadLedgerFactory:

    def test_loads_module_attribute(self):
        factory = load_ledger_factory(f"{__name__}:build_ledger")
        assert factory("0xkey", None) == ("ledger", "0xkey")

    def test_loads_dotted_attribute(self):
        factory = load_ledger_factory(f"{__name__}:Factories.build")
        assert factory("0xkey", None) == ("ledger", "0xkey")

    @pytest.mark.parametrize("path", ["", "no_colon", ":attr", "module:"])
    def test_malformed_path(self, path):
        with pytest.raises(ValueError, match="package.module:callable"):
            load_ledger_factory(path)

    def test_missing_module(self):
        with pytest.raises(ValueError, match="Cannot import"):
            load_ledger_factory("stakebot_missing_module_xyz:factory")

    def test_missing_attribute(self):
        with pytest.raises(ValueError, match="has no attribute"):
            load_ledger_factory(f"{__name__}:nope")

    def test_not_callable(self):
        with pytest.raises(ValueError, match="not callable"):
            load_ledger_factory(f"{__name__}:NOT_CALLABLE")
