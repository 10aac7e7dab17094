"""Core models: the account and its balance."""

from .account import Account

__all__ = ["Account"]
