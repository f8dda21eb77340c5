"""Content fingerprints used as event identity."""
import hashlib
from typing import Optional

DESCRIPTION_PREFIX_LENGTH = 50


def generate_fingerprint(
    title: Optional[str],
    start_raw: Optional[str],
    description: Optional[str],
    source: Optional[str]
) -> str:
    """
    Generate the identity hash of an event.

    Args:
        title: Event title
        start_raw: Date text as found on the page
        description: Event description; only its first 50 characters count
        source: Name of the originating organization

    Returns:
        SHA256 hex digest (64 characters)
    """
    description_prefix = (description or '').strip()[:DESCRIPTION_PREFIX_LENGTH]
    composite = '|'.join([
        (title or '').strip(),
        (start_raw or '').strip(),
        (source or '').strip(),
        description_prefix,
    ])
    return hashlib.sha256(composite.encode('utf-8')).hexdigest()
