"""
Identifier & Crypto Helpers

Opaque identifiers, bcrypt salts and salted password digests.
"""

import hmac
import uuid

import bcrypt

DEFAULT_HASH_ROUNDS = 12
STORAGE_KEY_PREFIX = "files"

# bcrypt only reads the first 72 bytes of a password
BCRYPT_MAX_PASSWORD_BYTES = 72


def generate_file_id() -> str:
    """Generate the public identifier of a file (UUID4 string)."""
    return str(uuid.uuid4())


def generate_storage_key() -> str:
    """
    Generate an object-store key.

    Independent from the file id and from anything the uploader supplies.
    """
    return f"{STORAGE_KEY_PREFIX}/{uuid.uuid4().hex}"


def generate_salt(rounds: int = DEFAULT_HASH_ROUNDS) -> str:
    """Generate a bcrypt salt; the cost factor travels inside it."""
    return bcrypt.gensalt(rounds=rounds).decode("utf-8")


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_PASSWORD_BYTES]


def hash_password(password: str, salt: str) -> str:
    """
    Compute the salted digest of a password.

    Args:
        password: Plain-text password
        salt: bcrypt salt stored beside the digest

    Returns:
        bcrypt hash of the password

    Raises:
        ValueError: If *salt* is not a bcrypt salt
    """
    hashed = bcrypt.hashpw(_password_bytes(password), salt.encode("utf-8"))
    return hashed.decode("utf-8")


def verify_password(candidate: str, salt: str, expected_hash: str) -> bool:
    """Recompute the digest of *candidate* and compare it in constant time."""
    if not candidate or not salt or not expected_hash:
        return False
    try:
        computed = hash_password(candidate, salt)
    except ValueError:
        return False
    return hmac.compare_digest(computed, expected_hash)
