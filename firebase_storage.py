"""
Firebase Storage object store for uploaded PDFs and extracted images.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

import firebase_admin
from firebase_admin import credentials, storage

from config import ConfigurationError, FIREBASE_STORAGE_BUCKET

log = logging.getLogger(__name__)

_firebase_app = None


def _get_credentials():
    """Get Firebase credentials from a key file or the FIREBASE_CREDENTIALS env var."""
    key_path = Path(os.environ.get("FIREBASE_KEY_PATH", Path(__file__).parent / "firebase-key.json"))
    if key_path.exists():
        return credentials.Certificate(str(key_path))

    if os.environ.get("FIREBASE_CREDENTIALS"):
        cred_dict = json.loads(os.environ["FIREBASE_CREDENTIALS"])
        # Handle private key newlines
        if "private_key" in cred_dict:
            cred_dict["private_key"] = cred_dict["private_key"].replace("\\n", "\n")
        return credentials.Certificate(cred_dict)

    raise ConfigurationError(
        "Firebase credentials not found. Provide firebase-key.json, "
        "set FIREBASE_KEY_PATH, or set FIREBASE_CREDENTIALS env var."
    )


def init_firebase(bucket_name: str = FIREBASE_STORAGE_BUCKET):
    """Initialize the Firebase app once and return the storage bucket."""
    global _firebase_app

    if not bucket_name:
        raise ConfigurationError("FIREBASE_STORAGE_BUCKET is not set.")

    if _firebase_app is None:
        cred = _get_credentials()
        _firebase_app = firebase_admin.initialize_app(cred, {"storageBucket": bucket_name})
        log.info("Firebase initialized for bucket %s", bucket_name)

    return storage.bucket(bucket_name)


class FirebaseObjectStore:
    """download/upload by storage path."""

    def __init__(self, bucket=None, bucket_name: Optional[str] = None):
        self.bucket = bucket if bucket is not None else init_firebase(bucket_name or FIREBASE_STORAGE_BUCKET)

    def download(self, path: str) -> bytes:
        """Download an object's bytes."""
        blob = self.bucket.blob(path)
        return blob.download_as_bytes()

    def upload(self, path: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """
        Upload bytes to Firebase Storage.

        Returns:
            Public URL of the uploaded object
        """
        blob = self.bucket.blob(path)
        blob.upload_from_string(data, content_type=content_type)
        blob.make_public()
        log.debug("Uploaded %s (%d bytes)", path, len(data))
        return blob.public_url
