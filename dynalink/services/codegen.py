"""Short code generation."""

import secrets
import string

from dynalink.core.config import MAX_CODE_LENGTH

DEFAULT_ALPHABET = string.ascii_lowercase + string.ascii_uppercase + string.digits
DEFAULT_LENGTH = 7


def generate_code(length: int = DEFAULT_LENGTH, alphabet: str = DEFAULT_ALPHABET) -> str:
    """
    Generate a random code drawn uniformly from ``alphabet``.

    Uniqueness is not checked here; the store's unique constraint is the
    authority and callers retry on collision.

    Args:
        length: Number of symbols, between 1 and 16
        alphabet: Symbols to draw from

    Returns:
        str: The generated code

    Raises:
        ValueError: If length is out of range or the alphabet is empty
    """
    if not 1 <= length <= MAX_CODE_LENGTH:
        raise ValueError(f"Code length must be between 1 and {MAX_CODE_LENGTH}, got {length}")
    if not alphabet:
        raise ValueError("Alphabet must not be empty")
    return "".join(secrets.choice(alphabet) for _ in range(length))
