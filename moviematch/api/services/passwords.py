from __future__ import annotations

import hashlib
import hmac
import secrets

PBKDF2_ITERATIONS = 120_000
PBKDF2_DKLEN = 64
PBKDF2_DIGEST = "sha512"


def new_salt() -> str:
    return secrets.token_hex(16)


def hash_password(password: str, salt: str) -> str:
    # La sal se usa tal cual (texto hex) como bytes utf-8, no decodificada
    derived = hashlib.pbkdf2_hmac(
        PBKDF2_DIGEST,
        password.encode("utf-8"),
        salt.encode("utf-8"),
        PBKDF2_ITERATIONS,
        dklen=PBKDF2_DKLEN,
    )
    return derived.hex()


def verify_password(password: str, salt: str, expected_hash: str) -> bool:
    if not salt or not expected_hash:
        return False
    return hmac.compare_digest(hash_password(password, salt), expected_hash)
