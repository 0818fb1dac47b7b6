"""
Sigil - Wallet identity and transaction signing.
"""
