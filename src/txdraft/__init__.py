"""txdraft — transaction-draft assembly and multi-phase signing for a UTXO ledger."""

__version__ = "0.1.0"
