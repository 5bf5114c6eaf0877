"""
SecureShare - Multi-Recipient Messages

One message, one message key, one ciphertext. The message key is wrapped
for each authorized recipient; everyone else gets an entry with no wrapped
key. Handing out (or not handing out) wrapped keys is the whole access
control story - there is no other revocation.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Mapping, Optional

from . import crypto
from .crypto import EncryptedBlob
from .errors import InvalidInputKind

logger = logging.getLogger(__name__)


@dataclass
class WrappedKeyEntry:
    recipient_id: str
    wrapped_key: Optional[str] = None     # None = not authorized for this message

    def to_dict(self) -> dict:
        data = {"id": self.recipient_id}
        if self.wrapped_key:
            data["wrappedKey"] = self.wrapped_key
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "WrappedKeyEntry":
        return cls(recipient_id=data["id"], wrapped_key=data.get("wrappedKey"))


@dataclass
class SharedMessage:
    message: EncryptedBlob
    entries: List[WrappedKeyEntry] = field(default_factory=list)

    def to_json(self) -> str:
        return json.dumps({
            "message": self.message.to_dict(),
            "entries": [e.to_dict() for e in self.entries],
        })

    @classmethod
    def from_json(cls, text: str) -> "SharedMessage":
        try:
            data = json.loads(text)
            return cls(
                message=EncryptedBlob.from_dict(data["message"]),
                entries=[WrappedKeyEntry.from_dict(e) for e in data["entries"]],
            )
        except (ValueError, KeyError, TypeError) as e:
            raise InvalidInputKind(f"Invalid shared message: {e}") from e


def share_message(
    plaintext,
    recipients: Mapping[str, object],
    authorized: Iterable[str]
) -> SharedMessage:
    """
    Encrypt a message once and wrap its key for the authorized recipients.

    Args:
        plaintext: Message text or bytes
        recipients: recipient id -> public key (base64 SPKI or RSAPublicKey)
        authorized: ids that may read the message (subset of recipients)

    Returns:
        SharedMessage with one entry per recipient, in recipients order
    """
    allowed = set(authorized)
    unknown = allowed - set(recipients)
    if unknown:
        raise InvalidInputKind(f"Unknown recipients: {sorted(unknown)}")

    message_key = crypto.generate_message_key()
    message = crypto.encrypt(plaintext, message_key)

    entries = []
    for recipient_id, public_key in recipients.items():
        if recipient_id in allowed:
            entries.append(WrappedKeyEntry(
                recipient_id, crypto.wrap_message_key(message_key, public_key)
            ))
        else:
            entries.append(WrappedKeyEntry(recipient_id))

    logger.debug("Shared message with %d of %d recipients", len(allowed), len(entries))
    return SharedMessage(message=message, entries=entries)


def find_wrapped_key(entries: Iterable[WrappedKeyEntry], recipient_id: str) -> Optional[str]:
    """
    Look up a recipient's wrapped key.

    If a recipient appears more than once, the last entry wins (including an
    entry without a wrapped key).
    """
    matches = [e for e in entries if e.recipient_id == recipient_id]
    if len(matches) > 1:
        logger.warning(
            "Recipient %s has %d wrapped-key entries; using the last one",
            recipient_id, len(matches)
        )
    return matches[-1].wrapped_key if matches else None


def open_message(shared: SharedMessage, recipient_id: str, private_key) -> Optional[bytes]:
    """
    Decrypt a shared message as one recipient.

    Args:
        shared: The SharedMessage
        recipient_id: Who is reading
        private_key: Recipient's opened private key (PKCS#8 bytes or RSAPrivateKey)

    Returns:
        Plaintext bytes, or None if the recipient has no wrapped key

    Raises:
        AuthenticationFailure: Wrapped key or message fails to decrypt
    """
    message_key = crypto.unwrap_message_key(
        find_wrapped_key(shared.entries, recipient_id), private_key
    )
    if message_key is None:
        return None
    return crypto.decrypt(shared.message, message_key)
