import re
from passlib.context import CryptContext
from core.config import settings

bcrypt_context = CryptContext(schemes=['bcrypt'], deprecated='auto', bcrypt__rounds=settings.BCRYPT_ROUNDS)

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128


def get_password_hash(password: str):
    # Bcrypt has a 72-byte limit, truncate if necessary
    return bcrypt_context.hash(password[:72])


def verify_password(plain_password: str, hashed_password: str):
    # Bcrypt has a 72-byte limit, truncate if necessary
    return bcrypt_context.verify(plain_password[:72], hashed_password)


def validate_password_strength(password: str) -> list[str]:
    """
    Check a candidate password against the password policy.

    Returns:
        List of human-readable violations (empty if the password is acceptable)
    """
    errors = []

    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")

    if len(password) > PASSWORD_MAX_LENGTH:
        errors.append(f"Password must be at most {PASSWORD_MAX_LENGTH} characters")

    if not re.search(r'[a-z]', password):
        errors.append("Password must contain at least one lowercase letter")

    if not re.search(r'[A-Z]', password):
        errors.append("Password must contain at least one uppercase letter")

    if not re.search(r'\d', password):
        errors.append("Password must contain at least one digit")

    if not re.search(r'[^A-Za-z0-9]', password):
        errors.append("Password must contain at least one special character")

    return errors
