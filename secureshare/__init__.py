"""
SecureShare - Multi-Recipient Envelope Encryption

Share a message with a chosen subset of registered users. Each user's
private key stays encrypted at rest under a password-derived key.

Key Features:
- Password-derived keys: PBKDF2-HMAC-SHA256
- Strong crypto: AES-256-GCM for data, RSA-2048 OAEP for key transport
- Selective disclosure: only recipients with a wrapped key can decrypt
- Password rotation without losing access to old messages
- Recovery: k-of-n Shamir backup of the device secret

Components:
- crypto.py: All cryptographic operations (one file!)
- errors.py: InvalidInputKind, AuthenticationFailure, StorageFailure
- store.py: SQLite/in-memory key-value store and the device secret
- registry.py: Users, public keys and sealed private keys
- envelope.py: Encrypt once, wrap per recipient, open as a recipient
- recovery.py: Shamir Secret Sharing for the device secret

Usage:
    python demo.py            # Five users, message readable by users 1, 3, 5
    python attack_demo.py     # What happens when things go wrong
"""

__version__ = "0.1.0"
__author__ = "SecureShare Team"
