"""Wallet services: the ledger and the credit sources built on it."""

from .ledger import AdjustResult, WalletLedger
from .rewards import WalletRewards

__all__ = ['AdjustResult', 'WalletLedger', 'WalletRewards']
