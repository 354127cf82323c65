import base64
import binascii
import hashlib
import os
import secrets
from functools import lru_cache

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from vibes.config.settings import get_settings
from vibes.exceptions import DecryptionError

NONCE_LENGTH = 12

@lru_cache
def _get_cipher() -> AESGCM:
    return AESGCM(bytes.fromhex(get_settings().encryption_key))


def encrypt_token(token: str) -> str:
    nonce = os.urandom(NONCE_LENGTH)
    ciphertext = _get_cipher().encrypt(nonce, token.encode(), None)
    return base64.b64encode(nonce + ciphertext).decode()


def decrypt_token(encrypted_token: str) -> str:
    try:
        combined = base64.b64decode(encrypted_token.encode(), validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError("Encrypted token is not valid base64") from e

    if len(combined) <= NONCE_LENGTH:
        raise DecryptionError("Encrypted token is too short")

    nonce, ciphertext = combined[:NONCE_LENGTH], combined[NONCE_LENGTH:]
    try:
        plaintext = _get_cipher().decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise DecryptionError("Encrypted token failed authentication") from e

    return plaintext.decode()


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def generate_token() -> str:
    return secrets.token_urlsafe(32)
