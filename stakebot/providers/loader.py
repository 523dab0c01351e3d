"""Resolve the ledger client factory named in configuration."""

from __future__ import annotations

import importlib
from typing import Any, Callable

from .base import LedgerClient

LedgerFactory = Callable[[str, Any], LedgerClient]


def load_ledger_factory(path: str) -> LedgerFactory:
    """Import ``package.module:callable`` and return the callable.

    The factory is called as ``factory(signing_key, settings)`` and must return
    a :class:`LedgerClient`.
    """

    module_name, sep, attr = (path or "").partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Ledger factory must look like 'package.module:callable', got {path!r}")

    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ValueError(f"Cannot import ledger factory module '{module_name}': {exc}") from exc

    target: Any = module
    for part in attr.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as exc:
            raise ValueError(f"'{module_name}' has no attribute '{attr}'") from exc

    if not callable(target):
        raise ValueError(f"Ledger factory '{path}' is not callable")
    return target
