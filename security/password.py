import bcrypt

# verified against when the username is unknown so both failure paths do a bcrypt check
_DUMMY_HASH = bcrypt.hashpw(b"autoclient-dummy-password", bcrypt.gensalt(rounds=12)).decode("utf-8")


def hash_password(plain_password: str) -> str:
    if not isinstance(plain_password, str) or len(plain_password) == 0:
        raise ValueError("Password must be a non-empty string")

    # bcrypt expects bytes
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(plain_password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(
            plain_password.encode("utf-8"),
            password_hash.encode("utf-8")
        )
    except ValueError:
        # malformed stored hash
        return False


def verify_workshop_password(workshop, plain_password: str) -> bool:
    """
    Checks the password of a possibly missing workshop.
    An unknown workshop still costs one bcrypt comparison.
    """
    if workshop is None:
        verify_password(plain_password or "x", _DUMMY_HASH)
        return False
    return verify_password(plain_password, workshop.password_hash)
