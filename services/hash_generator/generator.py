"""Random paste hash generation."""

from nanoid import generate

__all__ = ["HashGenerator", "ALPHABET"]

ALPHABET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"


class HashGenerator:
    """Produces fixed-length alphanumeric identifiers from a secure random source."""

    def __init__(self, length: int = 8, alphabet: str = ALPHABET):
        if length < 1:
            raise ValueError(f"hash length must be >= 1, got {length}")
        if not alphabet:
            raise ValueError("alphabet must not be empty")
        self.length = length
        self.alphabet = alphabet

    def generate(self) -> str:
        return generate(self.alphabet, self.length)
