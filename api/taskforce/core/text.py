import re
import secrets

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
SLUG_MAX_LENGTH = 80


def slugify(value: str, *, fallback: str) -> str:
    slug = _NON_ALNUM_RE.sub("-", value.lower()).strip("-")
    slug = slug[:SLUG_MAX_LENGTH].strip("-")
    return slug or fallback


def slug_candidates(base: str, *, attempts: int = 5) -> list[str]:
    """Base slug first, then random short suffixes, then a longer one as the last resort."""
    candidates = [base]
    for _ in range(attempts - 1):
        candidates.append(f"{base}-{secrets.token_hex(3)}")
    candidates.append(f"{base}-{secrets.token_hex(4)}")
    return candidates


def clean_text(value: object) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    stripped = value.strip()
    return stripped or None
