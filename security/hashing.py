import hashlib
import hmac


def sha256_hex(value: str) -> str:
    # SHA-256 is fine for hashing random tokens and short-lived OTP codes
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def hashes_equal(left: str, right: str) -> bool:
    if not left or not right:
        return False
    return hmac.compare_digest(left, right)
