"""
SecureShare - Guided Walkthrough (single run, no user input)

Run: python demo.py

Simulates five users sharing one device and walks through:
 - Device secret bootstrap (created once, then read back)
 - Password key derivation
 - Key pair provisioning + sealing each private key
 - Encrypting one message and wrapping its key for users 1, 3 and 5 only
 - Every user trying to read the message
 - Password change (re-sealing private keys) and reading again
 - Device secret recovery kit (Shamir k-of-n)

All steps print what a user would see plus a short "behind the scenes" note.
"""

import os
import tempfile
from textwrap import indent

from secureshare import crypto
from secureshare.envelope import open_message, share_message
from secureshare.recovery import combine_recovery_shares, format_recovery_kit, generate_recovery_shares
from secureshare.registry import UserRegistry
from secureshare.store import DeviceKeySource, SQLiteKeyStore


LINE = "=" * 70


def step(title: str, code_path: str):
    print(f"\n{LINE}\n{title}  (code: {code_path})\n{LINE}")


def explain(title: str, body: str):
    print(f"\n[Behind the scenes] {title}")
    print(indent(body.strip(), "  "))


def try_read_all(registry, shared, user_ids, derived_key):
    for uid in user_ids:
        private_key_raw = registry.unlock_private_key(uid, derived_key)
        plaintext = open_message(shared, uid, private_key_raw)
        if plaintext is None:
            print(f"  {uid}: not a recipient of this message.")
        else:
            print(f"  {uid} decrypted: {plaintext.decode('utf-8')}")


def main():
    tmp_dir = tempfile.mkdtemp()
    db_path = os.path.join(tmp_dir, "keys.db")
    user_ids = [f"user{i}" for i in range(1, 6)]

    with SQLiteKeyStore(db_path) as store:
        # 1) Device secret
        step("Device secret", "secureshare/store.py:DeviceKeySource")
        device_secret = DeviceKeySource(store).ensure_device_secret()
        print(f"Device secret: {crypto.b64e(device_secret)[:20]} ...")
        explain("One secret per install", """
32 random bytes are stored under 'device_key_v1' on first use.
Every later call reads the same value back, whether it was stored
as raw bytes or (older installs) as base64 text.
""")

        # 2) Password derivation
        step("Derive key from password", "secureshare/crypto.py:derive_key_from_password")
        derived_key = crypto.derive_key_from_password("123456", "salt-unik")
        print(f"Derived key: {derived_key!r}")
        explain("PBKDF2-HMAC-SHA256", f"""
{crypto.PBKDF2_ITERATIONS} iterations turn password + salt into an AES-256 key.
The key is non-extractable: it encrypts and decrypts, nothing more.
""")

        # 3) Users
        step("Register 5 users", "secureshare/registry.py:register_user")
        registry = UserRegistry(store)
        for uid in user_ids:
            user = registry.register_user(uid, derived_key)
            print(f"  {uid}: pub {user.public_key[:20]}...  privEnc {user.vault_entry.ciphertext[:20]}...")
        explain("Sealed private keys", f"""
Each user gets an RSA-{crypto.RSA_KEY_SIZE} key pair. The private key (PKCS#8) is
encrypted with AES-GCM under the derived key before it is stored.
""")

        # 4) Share a message with users 1, 3, 5
        step("Share a message with user1, user3, user5", "secureshare/envelope.py:share_message")
        shared = share_message(
            "Halo, ini pesan rahasia untuk beberapa user!",
            registry.public_keys(user_ids),
            authorized=["user1", "user3", "user5"],
        )
        for entry in shared.entries:
            shown = entry.wrapped_key[:20] + "..." if entry.wrapped_key else "none"
            print(f"  {entry.recipient_id}: wrappedKey {shown}")
        explain("Envelope encryption", """
The message is encrypted once with a fresh message key.
That key is RSA-OAEP wrapped for the three recipients only.
""")

        # 5) Everyone tries to read
        step("Every user tries to read", "secureshare/envelope.py:open_message")
        try_read_all(registry, shared, user_ids, derived_key)

        # 6) Password change
        step("Change password for every user", "secureshare/registry.py:change_password")
        new_key = crypto.derive_key_from_password("654321", "salt-unik")
        for uid in user_ids:
            registry.change_password(uid, derived_key, new_key)
        print("  Private keys re-sealed under the new password.")
        try_read_all(registry, shared, user_ids, new_key)
        explain("Access is unchanged", """
Only the vault entries changed. Wrapped keys target the (unchanged)
public keys, so the same three users can still read the message.
""")

        # 7) Recovery kit
        step("Device recovery kit (2 of 3)", "secureshare/recovery.py")
        shares = generate_recovery_shares(device_secret, k=2, n=3)
        print(format_recovery_kit(shares, k=2))
        recovered = combine_recovery_shares([shares[0], shares[2]])
        print(f"\nRecovered from shares 1 and 3: {'match' if recovered == device_secret else 'MISMATCH'}")

    print(f"\n{LINE}\nDone. Demo key store: {db_path}\n{LINE}")


if __name__ == "__main__":
    main()
