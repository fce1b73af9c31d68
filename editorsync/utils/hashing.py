"""SHA-256 fingerprints for file content and whole trees."""

import hashlib
import json

from editorsync.schemas.files import FileTreeNode


def hash_text(content: str, encoding: str = "utf-8") -> str:
    """SHA-256 hex digest of text content."""
    return hashlib.sha256(content.encode(encoding)).hexdigest()


def fingerprint_tree(tree: FileTreeNode) -> str:
    """Stable fingerprint of a tree's shape and entry metadata.

    Used only when the service does not supply one; children keep their order.
    """
    payload = tree.model_dump(mode="json", by_alias=True, exclude_none=True)
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hash_text(canonical)
