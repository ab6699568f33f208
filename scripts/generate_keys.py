"""
Generate an RSA-2048 keypair for development RS256 tokens.

Production tokens are signed by the identity service; locally we need both
halves so ``scripts/seed_data.py`` can mint tokens the API will accept.

Creates keys/private.pem and keys/public.pem (paths from settings).
Run once during project setup: python scripts/generate_keys.py [--force]
"""

import os
import sys
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa


def generate_keys(private_path: Path, public_path: Path, overwrite: bool = False) -> bool:
    """Write a fresh keypair. Returns False if keys exist and *overwrite* is off."""
    if not overwrite and (private_path.exists() or public_path.exists()):
        return False

    private_path.parent.mkdir(parents=True, exist_ok=True)
    public_path.parent.mkdir(parents=True, exist_ok=True)

    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)

    private_path.write_bytes(
        private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    private_path.chmod(0o600)

    public_path.write_bytes(
        private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )
    return True


if __name__ == "__main__":
    # Run from project root so relative key paths resolve
    project_root = Path(__file__).resolve().parent.parent
    os.chdir(project_root)
    sys.path.insert(0, str(project_root))

    from p2pswap.config import settings

    private = Path(settings.JWT_PRIVATE_KEY_PATH)
    public = Path(settings.JWT_PUBLIC_KEY_PATH)
    if generate_keys(private, public, overwrite="--force" in sys.argv):
        print("RSA keypair generated:")
        print(f"  Private key: {private.resolve()}")
        print(f"  Public key:  {public.resolve()}")
    else:
        print("Keys already exist; pass --force to replace them.")
