"""
Identifier generation for tasks and stages.

IDs look like ``stage_1718900000000_k3j9x0a1b``: a prefix, the creation time in
epoch milliseconds and nine random base36 characters. Uniqueness is
probabilistic; generated IDs are never checked against existing ones.
"""
import secrets
import string
import time

ID_ALPHABET = string.digits + string.ascii_lowercase
SUFFIX_LENGTH = 9

def generate_id(prefix: str = "item") -> str:
    """Generate an opaque ID for a task or stage."""
    if not prefix:
        raise ValueError("ID prefix must not be empty")
    millis = time.time_ns() // 1_000_000
    suffix = "".join(secrets.choice(ID_ALPHABET) for _ in range(SUFFIX_LENGTH))
    return f"{prefix}_{millis}_{suffix}"
