import re
import unicodedata


def normalize_name(s: str) -> str:
    """Lowercase ASCII, every run of non-alphanumerics collapsed to one space."""
    s = unicodedata.normalize("NFKD", s or "").encode("ascii", "ignore").decode().lower()
    s = re.sub(r"[^a-z0-9]+", " ", s)
    return s.strip()


def first_token(normalized: str) -> str:
    parts = normalized.split()
    return parts[0] if parts else ""
