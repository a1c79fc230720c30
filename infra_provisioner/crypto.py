import base64
import hashlib
import os

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519


def _load_private_key(key_path: str):
    with open(os.path.expanduser(key_path), 'rb') as key_file:
        key_data = key_file.read()

    # 支持 PEM 和 OpenSSH 两种私钥格式
    try:
        return serialization.load_pem_private_key(key_data, password=None)
    except ValueError:
        return serialization.load_ssh_private_key(key_data, password=None)


def get_fingerprint_from_key(key_path: str) -> str:
    """
    Compute the fingerprint EC2 reports for a key pair imported from ``key_path``.

    RSA keys use the colon separated MD5 of the DER SubjectPublicKeyInfo,
    ED25519 keys use the unpadded base64 SHA256 of the OpenSSH public key blob.
    """
    public_key = _load_private_key(key_path).public_key()

    if isinstance(public_key, ed25519.Ed25519PublicKey):
        public_key_bytes = public_key.public_bytes(
            encoding=serialization.Encoding.OpenSSH,
            format=serialization.PublicFormat.OpenSSH
        )
        key_data = base64.b64decode(public_key_bytes.split()[1])
        return base64.b64encode(hashlib.sha256(key_data).digest()).decode().rstrip('=')

    key_data = public_key.public_bytes(
        encoding=serialization.Encoding.DER,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )
    fingerprint = hashlib.md5(key_data).hexdigest()
    return ':'.join(fingerprint[i:i+2] for i in range(0, len(fingerprint), 2))


def get_public_key_body(key_path: str) -> str:
    """Return the OpenSSH public key line derived from the private key at ``key_path``."""
    public_key = _load_private_key(key_path).public_key()
    public_key_bytes = public_key.public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH
    )
    return public_key_bytes.decode('utf-8').strip()
