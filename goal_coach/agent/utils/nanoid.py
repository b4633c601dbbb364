import secrets
import string

ALPHABET = string.digits + string.ascii_lowercase + string.ascii_uppercase
SIZE = 16


def nanoid(size: int = SIZE) -> str:
    return "".join(secrets.choice(ALPHABET) for _ in range(size))
