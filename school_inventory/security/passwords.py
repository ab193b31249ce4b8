import re

from pwdlib import PasswordHash

from school_inventory.errors import ValidationFailed

password_hash = PasswordHash.recommended()

MIN_PASSWORD_LENGTH = 8
_UPPER_RE = re.compile(r'[A-Z]')
_DIGIT_RE = re.compile(r'\d')
_SPECIAL_RE = re.compile(r'[~`!@#$%^&*()_+\-={}\[\]|\\:;"\'<>,.?/]')


def hash_password(raw_password: str) -> str:
    return password_hash.hash(raw_password)


def verify_password(raw_password: str, hashed_password: str) -> bool:
    return password_hash.verify(raw_password, hashed_password)


def check_password_strength(raw_password: str) -> None:
    if len(raw_password or '') < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f'Password must be at least {MIN_PASSWORD_LENGTH} characters long.')
    if not (_UPPER_RE.search(raw_password) and _DIGIT_RE.search(raw_password) and _SPECIAL_RE.search(raw_password)):
        raise ValidationFailed('Password must include at least one uppercase letter, one number, and one special character.')
