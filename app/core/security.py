import secrets

import bcrypt

from app.core.config import settings

# bcrypt only looks at the first 72 bytes
BCRYPT_MAX_BYTES = 72


def _to_bytes(value: str) -> bytes:
    return value.encode("utf-8")[:BCRYPT_MAX_BYTES]


def _hash(value: str, rounds: int) -> str:
    return bcrypt.hashpw(_to_bytes(value), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def _check(value: str, hashed: str) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(_to_bytes(value), hashed.encode("utf-8"))
    except ValueError:
        # hash malformado
        return False


def get_password_hash(password: str) -> str:
    return _hash(password, settings.BCRYPT_ROUNDS)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return _check(plain_password, hashed_password)


def generate_otp() -> str:
    """6-digit numeric code, uniform over 100000..999999."""
    return str(100000 + secrets.randbelow(900000))


def hash_otp(otp: str) -> str:
    return _hash(otp, settings.OTP_BCRYPT_ROUNDS)


def verify_otp(otp: str, otp_hash: str) -> bool:
    return _check(otp, otp_hash)
