from __future__ import annotations

from urllib.parse import urlencode

DICEBEAR_BASE_URL = "https://api.dicebear.com/9.x"

# dashboard variant name -> DiceBear style slug
_STYLES = {
    "botttsNeutral": "bottts-neutral",
    "initials": "initials",
}


def avatar_uri(seed: str, variant: str = "botttsNeutral") -> str:
    """Deterministic avatar URL for an agent (bots) or a user (initials)."""
    style = _STYLES.get(variant)
    if style is None:
        raise ValueError(f"unknown avatar variant: {variant}")
    params = {"seed": seed}
    if variant == "initials":
        params.update({"fontWeight": "500", "fontSize": "42"})
    return f"{DICEBEAR_BASE_URL}/{style}/svg?{urlencode(params)}"
