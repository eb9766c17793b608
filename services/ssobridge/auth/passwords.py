"""One-time SSO password utilities.

SSO logins never see a user password. Instead the session issuer hands out a
random one-time password per login transaction, keeps only its hash, and
requires it back before minting a session.
"""

import hashlib
import secrets

PBKDF2_ITERATIONS = 100000


def generate_one_time_password() -> str:
    """Generate a random password scoped to one login transaction."""
    return secrets.token_urlsafe(32)


def hash_password(password: str) -> str:
    """Hash a password with PBKDF2-SHA256 and a random salt."""
    salt = secrets.token_hex(16)
    hash_bytes = hashlib.pbkdf2_hmac(
        "sha256",
        password.encode(),
        salt.encode(),
        iterations=PBKDF2_ITERATIONS,
    )
    return f"pbkdf2:sha256:{PBKDF2_ITERATIONS}${salt}${hash_bytes.hex()}"


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify a password against its hash.

    Returns True if the password matches, False otherwise.
    """
    try:
        method_info, salt, stored_hash = password_hash.split("$")
        if not method_info.startswith("pbkdf2:sha256:"):
            return False

        iterations = int(method_info.split(":")[-1])
        computed = hashlib.pbkdf2_hmac(
            "sha256",
            password.encode(),
            salt.encode(),
            iterations=iterations,
        ).hex()

        return secrets.compare_digest(computed, stored_hash)
    except (ValueError, IndexError):
        return False
