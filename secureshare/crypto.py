"""
SecureShare - Cryptography Module

This single file contains ALL cryptographic operations for multi-recipient
message sharing. Storage, the user registry and the sharing protocol build
on top of it; nothing else in the package touches a primitive directly.

Security Architecture:
    1. Password + salt → PBKDF2-HMAC-SHA256 → Derived Key (32 bytes, opaque)
    2. Each user gets an RSA-2048 key pair
    3. Private key (PKCS#8) → AES-GCM under Derived Key → Vault Entry
    4. Each message gets a fresh random Message Key → AES-GCM encryption
    5. Message Key is wrapped (RSA-OAEP) once per authorized recipient

Why this is secure:
    - AES-256-GCM is authenticated: wrong key and tampering both fail loudly
    - Every encryption draws a fresh 12-byte nonce
    - Private keys never touch storage unencrypted
    - No wrapped key = no way to recover the Message Key
"""

import os
import json
import base64
import binascii
from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import AuthenticationFailure, InvalidInputKind


# =============================================================================
# Configuration
# =============================================================================

KEY_SIZE = 32            # 256-bit AES key
NONCE_SIZE = 12          # 96-bit nonce for AES-GCM
TAG_SIZE = 16            # 128-bit authentication tag

# PBKDF2 parameters (same cost as the Web Crypto deployments we interoperate with)
PBKDF2_ITERATIONS = 100_000

# RSA key transport
RSA_KEY_SIZE = 2048
RSA_PUBLIC_EXPONENT = 65537


def _oaep() -> padding.OAEP:
    """RSA-OAEP with SHA-256 for both the hash and MGF1, no label."""
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


# =============================================================================
# Codec (bytes <-> transport text)
# =============================================================================

def b64e(data: bytes) -> str:
    """Encode bytes as standard base64 text."""
    return base64.b64encode(data).decode('ascii')


def b64d(text: str) -> bytes:
    """Decode standard base64 text, rejecting anything that isn't base64."""
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidInputKind(f"Invalid base64 data: {e}") from e


def to_bytes(value: Union[bytes, bytearray, memoryview, str]) -> bytes:
    """
    Normalize a transport value to raw bytes.

    Buffers crossing the package boundary may arrive either as raw bytes or
    as their base64 text; both mean the same thing.
    """
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    if isinstance(value, str):
        return b64d(value)
    raise InvalidInputKind(f"Expected bytes or base64 text, got {type(value).__name__}")


# =============================================================================
# Key Handles and Data Shapes
# =============================================================================

class SymmetricKey:
    """
    AES-256-GCM key handle.

    Derived keys and unwrapped message keys are non-extractable: they can
    encrypt and decrypt, but their raw bytes can't be read back out. Only
    freshly generated message keys are extractable, because wrapping needs
    their raw bytes.
    """

    __slots__ = ("_material", "_extractable")

    def __init__(self, material: bytes, extractable: bool = False):
        if not isinstance(material, (bytes, bytearray)) or len(material) != KEY_SIZE:
            raise InvalidInputKind(f"Symmetric key must be {KEY_SIZE} bytes")
        self._material = bytes(material)
        self._extractable = bool(extractable)

    @property
    def extractable(self) -> bool:
        return self._extractable

    def export_raw(self) -> bytes:
        """Return the raw key bytes (extractable keys only)."""
        if not self.extractable:
            raise InvalidInputKind("Key is not extractable")
        return self._material

    def __repr__(self) -> str:
        return f"SymmetricKey(extractable={self.extractable})"


@dataclass
class EncryptedBlob:
    """AES-GCM output: base64 ciphertext (with tag) and base64 iv."""
    ciphertext: str
    iv: str

    def to_dict(self) -> Dict[str, str]:
        return {"ciphertext": self.ciphertext, "iv": self.iv}

    @classmethod
    def from_dict(cls, data: dict) -> "EncryptedBlob":
        try:
            return cls(ciphertext=data["ciphertext"], iv=data["iv"])
        except (KeyError, TypeError) as e:
            raise InvalidInputKind(f"Invalid encrypted blob: {e}") from e


@dataclass
class KeyPair:
    """Freshly generated key pair: shareable public half, sensitive private half."""
    public_key: str                                   # base64 SPKI DER
    private_key_raw: bytes = field(repr=False)        # PKCS#8 DER, vault it immediately


# =============================================================================
# Canonical Associated Data
# =============================================================================

def canonical_ad(ad: Optional[dict]) -> Optional[bytes]:
    """
    Convert associated data to canonical JSON bytes.

    The base scheme uses no associated data (returns None). Callers that
    want to bind context pass a dict; same dict always gives same bytes.
    """
    if ad is None:
        return None
    json_str = json.dumps(ad, separators=(",", ":"), sort_keys=True, ensure_ascii=False)
    return json_str.encode('utf-8')


# =============================================================================
# Key Derivation (PBKDF2)
# =============================================================================

def derive_key_from_password(password: str, salt: Union[bytes, str]) -> SymmetricKey:
    """
    Derive an AES-256-GCM key from a password using PBKDF2-HMAC-SHA256.

    Why PBKDF2?
    - Available everywhere (including browsers' Web Crypto), so vault entries
      can be opened by any client that knows the password and salt
    - Iterated: each guess costs PBKDF2_ITERATIONS hashes

    Args:
        password: User's password
        salt: Text (UTF-8 encoded as-is) or raw bytes

    Returns:
        Non-extractable SymmetricKey

    Raises:
        InvalidInputKind: If salt is neither text nor a byte buffer
    """
    if isinstance(salt, str):
        salt_bytes = salt.encode('utf-8')
    elif isinstance(salt, (bytes, bytearray, memoryview)):
        salt_bytes = bytes(salt)
    else:
        raise InvalidInputKind(f"Invalid salt type: {type(salt).__name__}")

    if not isinstance(password, str):
        raise InvalidInputKind(f"Invalid password type: {type(password).__name__}")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt_bytes,
        iterations=PBKDF2_ITERATIONS,
    )
    return SymmetricKey(kdf.derive(password.encode('utf-8')), extractable=False)


# =============================================================================
# Encryption (AES-256-GCM)
# =============================================================================

def generate_message_key() -> SymmetricKey:
    """
    Generate a random key for one message.

    Why a fresh key per message?
    - Recipients of one message learn nothing about any other message
    - The key can be wrapped for exactly the recipients of this message

    Returns:
        Extractable 256-bit SymmetricKey
    """
    return SymmetricKey(os.urandom(KEY_SIZE), extractable=True)


def _require_key(key) -> SymmetricKey:
    if not isinstance(key, SymmetricKey):
        raise InvalidInputKind(f"Expected SymmetricKey, got {type(key).__name__}")
    return key


def encrypt(
    plaintext: Union[bytes, str],
    key: SymmetricKey,
    associated_data: Optional[dict] = None
) -> EncryptedBlob:
    """
    Encrypt data with AES-256-GCM.

    Args:
        plaintext: Data to encrypt (text is UTF-8 encoded)
        key: SymmetricKey (derived or message key)
        associated_data: Optional context dict, authenticated but not encrypted

    Returns:
        EncryptedBlob with base64 ciphertext (incl. 16-byte tag) and iv
    """
    _require_key(key)
    if isinstance(plaintext, str):
        plaintext = plaintext.encode('utf-8')
    elif isinstance(plaintext, (bytearray, memoryview)):
        plaintext = bytes(plaintext)
    elif not isinstance(plaintext, bytes):
        raise InvalidInputKind(f"Invalid plaintext type: {type(plaintext).__name__}")

    # Generate random nonce (NEVER reuse with same key!)
    nonce = os.urandom(NONCE_SIZE)

    aesgcm = AESGCM(key._material)
    ciphertext = aesgcm.encrypt(nonce, plaintext, canonical_ad(associated_data))

    return EncryptedBlob(ciphertext=b64e(ciphertext), iv=b64e(nonce))


def decrypt(
    blob: EncryptedBlob,
    key: SymmetricKey,
    associated_data: Optional[dict] = None
) -> bytes:
    """
    Decrypt AES-256-GCM ciphertext.

    Args:
        blob: Output of encrypt() (fields may be base64 text or raw bytes)
        key: Same key used for encryption
        associated_data: MUST match encryption exactly, or decryption fails

    Returns:
        Plaintext bytes

    Raises:
        AuthenticationFailure: If tampered, wrong key, or wrong associated data
    """
    _require_key(key)
    nonce = to_bytes(blob.iv)
    ciphertext = to_bytes(blob.ciphertext)
    if len(nonce) != NONCE_SIZE:
        raise InvalidInputKind(f"iv must be {NONCE_SIZE} bytes, got {len(nonce)}")

    aesgcm = AESGCM(key._material)
    try:
        return aesgcm.decrypt(nonce, ciphertext, canonical_ad(associated_data))
    except InvalidTag as e:
        raise AuthenticationFailure("Authentication failed: wrong key or corrupted data") from e


def decrypt_text(blob: EncryptedBlob, key: SymmetricKey) -> str:
    """Decrypt and decode a UTF-8 text message."""
    return decrypt(blob, key).decode('utf-8')


# =============================================================================
# Key Pairs (RSA-OAEP key transport)
# =============================================================================

def generate_key_pair() -> KeyPair:
    """
    Generate an RSA key pair for key transport.

    Returns:
        KeyPair with:
        - public_key: base64 SPKI DER (safe to store and share)
        - private_key_raw: PKCS#8 DER bytes (seal it before storing!)
    """
    private_key = rsa.generate_private_key(
        public_exponent=RSA_PUBLIC_EXPONENT,
        key_size=RSA_KEY_SIZE,
    )
    private_key_raw = private_key.private_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return KeyPair(
        public_key=export_public_key(private_key.public_key()),
        private_key_raw=private_key_raw,
    )


def export_public_key(public_key: rsa.RSAPublicKey) -> str:
    """Export a public key as base64 SPKI DER."""
    spki = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return b64e(spki)


def load_public_key(spki: Union[str, bytes, rsa.RSAPublicKey]) -> rsa.RSAPublicKey:
    """Import a public key from base64 (or raw) SPKI DER."""
    if isinstance(spki, rsa.RSAPublicKey):
        return spki
    try:
        key = serialization.load_der_public_key(to_bytes(spki))
    except ValueError as e:
        raise InvalidInputKind(f"Invalid public key: {e}") from e
    if not isinstance(key, rsa.RSAPublicKey):
        raise InvalidInputKind("Public key is not an RSA key")
    return key


def load_private_key(private_key_raw: Union[bytes, rsa.RSAPrivateKey]) -> rsa.RSAPrivateKey:
    """Import a private key from raw PKCS#8 DER bytes."""
    if isinstance(private_key_raw, rsa.RSAPrivateKey):
        return private_key_raw
    try:
        key = serialization.load_der_private_key(to_bytes(private_key_raw), password=None)
    except (ValueError, TypeError) as e:
        raise InvalidInputKind(f"Invalid private key: {e}") from e
    if not isinstance(key, rsa.RSAPrivateKey):
        raise InvalidInputKind("Private key is not an RSA key")
    return key


# =============================================================================
# Private Key Vault
# =============================================================================

def seal_private_key(private_key_raw: bytes, derived_key: SymmetricKey) -> EncryptedBlob:
    """
    Encrypt a private key for storage at rest.

    Args:
        private_key_raw: PKCS#8 DER bytes from generate_key_pair()
        derived_key: From derive_key_from_password()

    Returns:
        EncryptedBlob (the user's vault entry)
    """
    return encrypt(to_bytes(private_key_raw), derived_key)


def open_private_key(blob: EncryptedBlob, derived_key: SymmetricKey) -> bytes:
    """
    Decrypt a vault entry back to raw PKCS#8 bytes.

    Raises:
        AuthenticationFailure: Wrong password or tampered entry (same error)
    """
    return decrypt(blob, derived_key)


def rekey_private_key(
    blob: EncryptedBlob,
    old_key: SymmetricKey,
    new_key: SymmetricKey
) -> EncryptedBlob:
    """
    Re-encrypt a vault entry under a new derived key (password change).

    Opens with old_key, seals with new_key and returns the replacement
    entry. If opening fails nothing new is produced, so the caller's
    stored entry is untouched.
    """
    private_key_raw = open_private_key(blob, old_key)
    return seal_private_key(private_key_raw, new_key)


# =============================================================================
# Envelope Key Exchange (wrap/unwrap Message Keys)
# =============================================================================

def wrap_message_key(
    message_key: SymmetricKey,
    recipient_public_key: Union[str, bytes, rsa.RSAPublicKey]
) -> str:
    """
    Encrypt (wrap) a message key for one recipient.

    This is "envelope encryption":
    - Message key encrypts the actual message (once)
    - Each recipient's public key encrypts the message key

    OAEP is randomized: wrapping the same key twice gives different blobs.

    Returns:
        base64 wrapped key
    """
    raw = _require_key(message_key).export_raw()
    public_key = load_public_key(recipient_public_key)
    return b64e(public_key.encrypt(raw, _oaep()))


def unwrap_message_key(
    wrapped_key: Optional[Union[str, bytes]],
    recipient_private_key: Union[bytes, rsa.RSAPrivateKey]
) -> Optional[SymmetricKey]:
    """
    Decrypt (unwrap) a message key.

    Returns:
        - None if no wrapped key was given (recipient not authorized)
        - Non-extractable SymmetricKey otherwise

    Raises:
        AuthenticationFailure: A wrapped key was given but can't be decrypted
                               with this private key (wrong key or corrupted)
    """
    # Only an absent blob means "not a recipient"; other shapes fail in to_bytes()
    if wrapped_key is None or wrapped_key in ("", b""):
        return None

    wrapped = to_bytes(wrapped_key)
    private_key = load_private_key(recipient_private_key)
    try:
        raw = private_key.decrypt(wrapped, _oaep())
    except ValueError as e:
        raise AuthenticationFailure("Key unwrap failed: wrong private key or corrupted data") from e

    if len(raw) != KEY_SIZE:
        raise AuthenticationFailure("Key unwrap failed: unexpected key length")
    return SymmetricKey(raw, extractable=False)
