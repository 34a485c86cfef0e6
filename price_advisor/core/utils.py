import math
import re
from typing import Any

_NUMBER_JUNK = re.compile(r"[^\d.\-]")

def clean_text(value: Any) -> str:
    """
    Minimal normalization for free-text fields:
    - None → ""
    - trim whitespace
    - collapse internal runs of whitespace
    """
    if value is None:
        return ""
    return " ".join(str(value).split())

def lenient_number(value: Any) -> float | None:
    """
    Parse numbers the way listing forms send them: 45000, "45,000",
    "₹ 1,20,000", "45000.0". Returns None for blanks, junk, NaN/inf.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        num = float(value)
    else:
        text = _NUMBER_JUNK.sub("", str(value))
        if not text or text in {"-", ".", "-."}:
            return None
        try:
            num = float(text)
        except ValueError:
            return None
    if not math.isfinite(num):
        return None
    return num

def positive_int(value: Any) -> int | None:
    """Lenient number rounded to an int; non-positive values count as absent."""
    num = lenient_number(value)
    if num is None or num <= 0:
        return None
    return int(round(num))

def fnv1a_32(s: str) -> int:
    """Deterministic, fast hash for seed generation."""
    h = 0x811c9dc5
    for c in s.encode("utf-8"):
        h ^= c
        h = (h * 0x01000193) & 0xFFFFFFFF
    return h

def seeded_rand(seed: int, n: int = 1) -> list[float]:
    """
    Stateless pseudo-random generator (Mulberry32-like) so
    same seed → same outputs without storing PRNG state.
    """
    out = []
    t = (seed + 0x6D2B79F5) & 0xFFFFFFFF
    for _ in range(n):
        t = (t ^ (t >> 15)) * (t | 1) & 0xFFFFFFFF
        t ^= t + ((t ^ (t >> 7)) * (t | 61) & 0xFFFFFFFF)
        r = ((t ^ (t >> 14)) & 0xFFFFFFFF) / 4294967296.0
        out.append(r)
    return out

def money_band(base: int, seed: int) -> tuple[int, int]:
    """Compute +/- spread around base price using seed for variety."""
    spread = 0.05 + seeded_rand(seed+1, 1)[0] * 0.07  # 5–12%
    low = int(round(base * (1 - spread)))
    high = int(round(base * (1 + spread)))
    return low, high
