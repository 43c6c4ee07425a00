"""
auth/vault.py -- Password hashing and verification (CredentialVault).

Passwords: bcrypt used directly, no passlib wrapper. passlib's internal
     wrap-bug detection creates a password longer than 72 bytes, which
     bcrypt 4.1+ rejects with an explicit error. Direct bcrypt usage is simpler
     and has no compatibility shim.

Cost factor: fixed per process (Settings.bcrypt_rounds, 12 in production).
     The hash is deliberately CPU-slow; it dominates the latency of register,
     login and API key creation and must not be short-circuited.

Timing equalization [C1]: verify_dummy() runs one real bcrypt comparison
     against a digest computed with the same cost when the vault is built,
     so an unknown email takes as long to reject as a wrong password, the
     first one included.

The vault never logs or returns plaintext. Password policy (length,
complexity) is the caller's job -- see auth/directory.py.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging

import bcrypt

logger = logging.getLogger("authguard.auth")

DEFAULT_ROUNDS = 12
_DUMMY_PLAINTEXT = "authguard_timing_dummy"


class CredentialVault:
    """Slow, salted, adaptive hashing for low-entropy secrets.

    Usage:
        vault = CredentialVault(rounds=12)
        digest = vault.hash("Str0ng!Pass")
        vault.verify("Str0ng!Pass", digest)  # True
    """

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self.rounds = rounds
        self._dummy_hash = self.hash(_DUMMY_PLAINTEXT)

    def hash(self, plaintext: str) -> str:
        """Return a bcrypt digest of the given plaintext.

        bcrypt only reads the first 72 bytes and recent releases refuse longer
        input outright. Passwords are capped at 72 bytes by the registration
        policy; generated API keys are 67 bytes.
        """
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(plaintext.encode("utf-8"), salt).decode("utf-8")

    def verify(self, plaintext: str, digest: str) -> bool:
        """Return True if plaintext matches the bcrypt digest.

        A malformed digest is a mismatch, not an error.
        """
        try:
            return bcrypt.checkpw(plaintext.encode("utf-8"), digest.encode("utf-8"))
        except (ValueError, TypeError):
            logger.warning("bcrypt rejected a stored digest as malformed")
            return False

    def verify_dummy(self, plaintext: str) -> bool:
        """Burn one verification against a throwaway digest. Always False."""
        self.verify(plaintext, self._dummy_hash)
        return False
