import os

from .base import SecretProvider


class SecretUnavailableError(RuntimeError):
    """The signing key could not be obtained"""


class EnvSecretProvider(SecretProvider):
    """Reads the signing key from an environment variable"""

    def __init__(self, env_var: str = "STAKEBOT_SIGNING_KEY"):
        self.env_var = env_var

    def obtain_signing_key(self) -> str:
        value = os.getenv(self.env_var, "").strip()
        if not value:
            raise SecretUnavailableError(f"Signing key not found in ${self.env_var}")
        return value
