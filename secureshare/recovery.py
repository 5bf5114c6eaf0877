"""
SecureShare - Recovery Module (Shamir Secret Sharing)

Implements k-of-n threshold backup of the device secret:
- Split the 32-byte device secret into n shares
- Any k shares can reconstruct it
- Fewer than k shares reveal NOTHING
- Based on polynomial interpolation (SLIP-0039)

Use case: moving to a new device, or restoring after the key store is lost.
Restore with DeviceKeySource.restore_device_secret().
"""

from typing import List
from shamir_mnemonic import shamir
from shamir_mnemonic.utils import MnemonicError


def generate_recovery_shares(secret: bytes, k: int, n: int) -> List[str]:
    """
    Split a secret into n shares (need k to recover).

    Args:
        secret: 32-byte device secret
        k: Threshold (minimum shares needed)
        n: Total number of shares to create

    Returns:
        List of n shares (each share is one mnemonic sentence)
    """
    if k > n:
        raise ValueError(f"k ({k}) cannot be greater than n ({n})")

    if k < 2:
        raise ValueError("k must be at least 2")

    if n > 16:
        raise ValueError("n cannot exceed 16 (library limitation)")

    # One group, k-of-n members
    groups = shamir.generate_mnemonics(
        group_threshold=1,
        groups=[(k, n)],
        master_secret=bytes(secret)
    )

    return groups[0]


def combine_recovery_shares(shares: List[str]) -> bytes:
    """
    Reconstruct the secret from k shares.

    Raises:
        ValueError: If shares are invalid or insufficient
    """
    try:
        return shamir.combine_mnemonics(shares)
    except (MnemonicError, ValueError) as e:
        raise ValueError(f"Failed to combine shares: {e}") from e


def format_recovery_kit(shares: List[str], k: int) -> str:
    """
    Format recovery shares for printing on paper.

    Returns:
        Formatted string ready for printing
    """
    output = []
    output.append("=" * 70)
    output.append("SecureShare DEVICE RECOVERY KIT")
    output.append("=" * 70)
    output.append(f"\nThreshold: Need {k} of {len(shares)} shares to recover")
    output.append("\nIMPORTANT:")
    output.append("- Store shares in separate secure locations")
    output.append(f"- Any {k} shares restore the device secret")
    output.append("- NEVER store all shares together!\n")
    output.append("=" * 70)

    for i, share in enumerate(shares, 1):
        output.append(f"\n\nSHARE {i} of {len(shares)}")
        output.append("-" * 70)
        output.append(share)
        output.append("\n" + "-" * 70)

    return "\n".join(output)
