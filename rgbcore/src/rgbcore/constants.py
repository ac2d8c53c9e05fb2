"""
Node-service protocol constants and wallet defaults.

The node service exposes every wallet operation as a POST under
WALLET_PATH_PREFIX and identifies the wallet through three headers.
"""

from __future__ import annotations

# Identity headers attached to each wallet-scoped request
HEADER_XPUB_VANILLA = "xpub-van"
HEADER_XPUB_COLORED = "xpub-col"
HEADER_MASTER_FINGERPRINT = "master-fingerprint"

WALLET_PATH_PREFIX = "/wallet"

# Upper bound for a single node-service call (seconds)
DEFAULT_NODE_TIMEOUT = 60.0

# Signing can involve key derivation on the agent side
DEFAULT_SIGNER_TIMEOUT = 60.0

# Fee rates in sat/vB
DEFAULT_CREATE_UTXOS_FEE_RATE = 2
DEFAULT_SEND_BTC_FEE_RATE = 2
DEFAULT_SEND_ASSET_FEE_RATE = 5

# Colorable UTXO batch created by create-utxos
DEFAULT_UTXO_COUNT = 5
DEFAULT_UTXO_SIZE = 10_000  # satoshis

DEFAULT_BACKUP_PASSWORD = "backup"

# Node error marker meaning the wallet already has enough free colorable outputs
ALLOCATIONS_ALREADY_AVAILABLE = "AllocationsAlreadyAvailable"

# Scope of at-rest mnemonic protection. Changing this string makes every
# previously protected mnemonic unrecoverable.
MNEMONIC_PROTECTION_PURPOSE = "rgbwallet.MnemonicProtection.v1"

# BIP39 phrase length bounds used by the plaintext-migration heuristic
MNEMONIC_MIN_WORDS = 12
MNEMONIC_MAX_WORDS = 24

# Bitcoin amounts are displayed with 8 fractional digits
BTC_PRECISION = 8
