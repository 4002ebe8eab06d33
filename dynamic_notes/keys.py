"""Header and expression key normalization.

Source tables and rule authors spell the same column differently
("CVR Last Month – Google", "cvr_last_month_google"). Every lookup in the
engine goes through ``normalize`` so those spellings meet on one key.
"""

from __future__ import annotations

import re
from typing import Any

NON_KEY_CHARS_RE = re.compile(r"[^a-z0-9]")


def normalize(raw: Any) -> str:
    if raw is None:
        return ""
    text = raw if isinstance(raw, str) else str(raw)
    if not text:
        return ""
    return NON_KEY_CHARS_RE.sub("", text.lower())
