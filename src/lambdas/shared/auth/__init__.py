"""Passwordless authentication primitives: signed tokens, sessions, nonces."""

from src.lambdas.shared.auth.magic_link import (
    mint_magic_link_token,
    new_nonce,
    read_magic_link_token,
)
from src.lambdas.shared.auth.nonce_ledger import NonceLedger, RedeemResult
from src.lambdas.shared.auth.sessions import (
    derive_session_id,
    issue_session_token,
    read_session,
    set_session_cookie,
)

__all__ = [
    "NonceLedger",
    "RedeemResult",
    "derive_session_id",
    "issue_session_token",
    "mint_magic_link_token",
    "new_nonce",
    "read_magic_link_token",
    "read_session",
    "set_session_cookie",
]
