"""
security/passwords.py — bcrypt password hashing.

  - Salted one-way hash, fresh random salt per call.
  - Work factor fixed per process (config BCRYPT_LOG_ROUNDS, default 12).
  - Verification is constant-time (bcrypt.checkpw).
  - Raw passwords are never stored and never logged.
"""

from __future__ import annotations

import bcrypt

# bcrypt only reads the first 72 bytes of its input.
MAX_PASSWORD_BYTES = 72

_DUMMY_PASSWORD = b"taskapp-timing-equaliser"


class PasswordHasher:

    def __init__(self, rounds: int = 12) -> None:
        if not 4 <= rounds <= 31:
            raise ValueError(f"bcrypt rounds must be between 4 and 31, got {rounds}.")
        self.rounds = rounds
        # Built up front so the first unknown-identity login costs one
        # checkpw, like every later one.
        self._dummy_hash = bcrypt.hashpw(_DUMMY_PASSWORD, bcrypt.gensalt(rounds=rounds))

    def hash(self, plaintext: str) -> str:
        """
        Returns the bcrypt hash of `plaintext` as a str.

        Any failure raises; callers must not fall back to storing plaintext.
        """
        return bcrypt.hashpw(
            plaintext.encode("utf-8"),
            bcrypt.gensalt(rounds=self.rounds),
        ).decode("utf-8")

    def verify(self, password_hash: str, plaintext: str) -> bool:
        try:
            return bcrypt.checkpw(
                plaintext.encode("utf-8"),
                password_hash.encode("utf-8"),
            )
        except ValueError:
            # Stored value is not a bcrypt hash.
            return False

    def verify_dummy(self, plaintext: str) -> bool:
        """
        Runs a full bcrypt comparison against a throwaway hash.

        Used when a login identity matches no user so that the miss path costs
        the same as a wrong password. Always returns False.
        """
        try:
            bcrypt.checkpw(plaintext.encode("utf-8"), self._dummy_hash)
        except ValueError:
            # Over-long input; verify() reports the same case as a mismatch.
            pass
        return False
