from .base import LedgerClient, SecretProvider, TokenInfo, TxReceipt
from .loader import LedgerFactory, load_ledger_factory
from .secrets import EnvSecretProvider, SecretUnavailableError

__all__ = [
    "EnvSecretProvider",
    "LedgerClient",
    "LedgerFactory",
    "SecretProvider",
    "SecretUnavailableError",
    "TokenInfo",
    "TxReceipt",
    "load_ledger_factory",
]
