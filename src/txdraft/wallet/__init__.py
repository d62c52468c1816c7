"""Local signer and address codec."""

from txdraft.wallet.keys import Signer, Wallet

__all__ = ["Signer", "Wallet"]
