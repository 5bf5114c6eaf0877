"""
SecureShare - Attack Demonstration

Run: python attack_demo.py

What it shows (and why attacks fail):
1) Wrong password cannot open a sealed private key.
2) Tampered message ciphertext is detected by AES-GCM.
3) A non-recipient gets nothing to unwrap.
4) Stealing someone else's wrapped key doesn't help.
5) Shamir recovery rejects insufficient shares.
"""

import os

from secureshare import crypto
from secureshare.envelope import find_wrapped_key, share_message
from secureshare.errors import AuthenticationFailure
from secureshare.recovery import combine_recovery_shares, generate_recovery_shares
from secureshare.registry import UserRegistry
from secureshare.store import MemoryKeyStore


LINE = "=" * 70


def section(title: str):
    print(f"\n{LINE}\n{title}\n{LINE}")


def main():
    password_key = crypto.derive_key_from_password("CorrectHorseBatteryStaple!", "demo-salt")
    registry = UserRegistry(MemoryKeyStore())
    for uid in ("alice", "bob", "mallory"):
        registry.register_user(uid, password_key)

    shared = share_message(
        "Meet at noon.",
        registry.public_keys(["alice", "bob", "mallory"]),
        authorized=["alice", "bob"],
    )

    # 1) Wrong password
    section("Attack 1: Wrong password")
    try:
        wrong_key = crypto.derive_key_from_password("wrong_password", "demo-salt")
        registry.unlock_private_key("alice", wrong_key)
        print("Unexpected: private key opened with wrong password")
    except AuthenticationFailure as e:
        print(f"Expected failure: {e}")

    # 2) Ciphertext tampering
    section("Attack 2: Flip one bit of the message ciphertext")
    tampered = bytearray(crypto.b64d(shared.message.ciphertext))
    tampered[0] ^= 1
    bad_message = crypto.EncryptedBlob(crypto.b64e(bytes(tampered)), shared.message.iv)
    alice_key = registry.unlock_private_key("alice", password_key)
    message_key = crypto.unwrap_message_key(find_wrapped_key(shared.entries, "alice"), alice_key)
    try:
        crypto.decrypt(bad_message, message_key)
        print("Unexpected: tampered message decrypted")
    except AuthenticationFailure as e:
        print(f"Expected failure: {e}")

    # 3) Non-recipient
    section("Attack 3: Mallory wasn't a recipient")
    mallory_key = registry.unlock_private_key("mallory", password_key)
    result = crypto.unwrap_message_key(find_wrapped_key(shared.entries, "mallory"), mallory_key)
    print(f"Unwrap result for mallory: {result}  (no wrapped key, nothing to try)")

    # 4) Using someone else's wrapped key
    section("Attack 4: Mallory uses Bob's wrapped key")
    try:
        crypto.unwrap_message_key(find_wrapped_key(shared.entries, "bob"), mallory_key)
        print("Unexpected: unwrap succeeded with the wrong private key")
    except AuthenticationFailure as e:
        print(f"Expected failure: {e}")

    # 5) Insufficient recovery shares
    section("Attack 5: Recover device secret with too few shares")
    shares = generate_recovery_shares(os.urandom(32), k=3, n=5)
    try:
        combine_recovery_shares(shares[:2])
        print("Unexpected: recovered with only 2 of 3 required shares")
    except ValueError as e:
        print(f"Expected failure: {e}")


if __name__ == "__main__":
    main()
