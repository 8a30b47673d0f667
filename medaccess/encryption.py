"""
This module handles the encryption key used for MedAccess data at rest.

Both the records file and the persisted login session are Fernet-encrypted
JSON. The module is responsible for:
- Generating a secret key the first time it is needed.
- Storing and loading that key from `KEY_FILE`.
- Handing out a shared `Fernet` instance for the stores.

Security Note: the key file must never be committed to version control.
"""
# medaccess/encryption.py

import logging
from pathlib import Path

from cryptography.fernet import Fernet

from medaccess.config import KEY_FILE

logger = logging.getLogger(__name__)

_encryptors = {}


def write_key(key_file: str = KEY_FILE) -> bytes:
    """Generates a new Fernet key and saves it to `key_file`."""
    key = Fernet.generate_key()
    Path(key_file).write_bytes(key)
    return key


def load_key(key_file: str = KEY_FILE) -> bytes:
    """Loads the Fernet key from `key_file`.

    Raises:
        FileNotFoundError: If the key has not been generated yet.
    """
    return Path(key_file).read_bytes()


def get_encryptor(key_file: str = KEY_FILE) -> Fernet:
    """Returns the Fernet instance for `key_file`, creating the key on first run."""
    if key_file not in _encryptors:
        try:
            key = load_key(key_file)
        except FileNotFoundError:
            logger.warning(f"Encryption key '{key_file}' not found. Generating a new one.")
            key = write_key(key_file)
        _encryptors[key_file] = Fernet(key)
    return _encryptors[key_file]
