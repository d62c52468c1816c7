"""Draft services: UTXO selection, composition, signing and result extraction."""
