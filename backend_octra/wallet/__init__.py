"""
Wallet package: key derivation, transfer signing, and wallet account service.
"""

from backend_octra.wallet.keys import (
    DerivedWallet,
    Keypair,
    address_from_public_key,
    derive_from_mnemonic,
    derive_from_phrase,
    derive_from_private_key,
    open_signing_key,
)
from backend_octra.wallet.signer import (
    assemble_signed_transaction,
    build_transfer_message,
    sign,
    to_smallest_units,
    verify,
)

__all__ = [
    "DerivedWallet",
    "Keypair",
    "address_from_public_key",
    "assemble_signed_transaction",
    "build_transfer_message",
    "derive_from_mnemonic",
    "derive_from_phrase",
    "derive_from_private_key",
    "open_signing_key",
    "sign",
    "to_smallest_units",
    "verify",
]
