# fairness (commit / reveal) module
"""Commit-reveal seeding for salvos.

At game creation a random 32-byte secret is drawn and only its SHA-256
commitment is published. Each round's salvo seed is derived from the secret
with HKDF, bound to the game id and round number. Once the game is over the
secret is revealed and anyone can re-derive every seed, check it against the
commitment, and replay the salvos with :func:`dinghy.salvo.generate_shots`.
"""

import hmac
import os

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

SECRET_BYTES = 32


def _sha256_hex(data: bytes) -> str:
    digest = hashes.Hash(hashes.SHA256())
    digest.update(data)
    return digest.finalize().hex()


def derive_round_seed(secret: bytes, game_id: str, round_number: int) -> str:
    """Derive the 64-hex-character seed for *round_number* of *game_id*."""
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=f"dinghy-round:{game_id}:{round_number}".encode(),
    )
    return hkdf.derive(secret).hex()


def seed_commitment(seed: str) -> str:
    """SHA-256 of a seed string, as stored next to a round in audit logs."""
    return _sha256_hex(seed.lower().encode())


def verify_commitment(secret_hex: str, commitment: str) -> bool:
    """Check a revealed secret against the commitment published earlier."""
    try:
        secret = bytes.fromhex(secret_hex)
    except ValueError:
        return False
    return hmac.compare_digest(_sha256_hex(secret), commitment.lower())


def verify_round_seed(secret_hex: str, game_id: str, round_number: int, seed: str) -> bool:
    """Check that *seed* is the one derived for *round_number* from the secret."""
    try:
        secret = bytes.fromhex(secret_hex)
    except ValueError:
        return False
    expected = derive_round_seed(secret, game_id, round_number)
    return hmac.compare_digest(expected, seed.lower())


class RoundSeeder:
    """Per-game seed source holding the committed secret."""

    def __init__(self, game_id: str, secret: bytes | None = None):
        self.game_id = game_id
        self._secret = secret if secret is not None else os.urandom(SECRET_BYTES)
        if len(self._secret) != SECRET_BYTES:
            raise ValueError(f"secret must be {SECRET_BYTES} bytes")
        self.commitment = _sha256_hex(self._secret)

    def seed_for(self, round_number: int) -> str:
        return derive_round_seed(self._secret, self.game_id, round_number)

    def reveal(self) -> str:
        """Return the secret as hex. Only call this once the game is over."""
        return self._secret.hex()
