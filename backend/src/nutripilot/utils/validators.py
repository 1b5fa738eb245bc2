import math


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def safe_float(x) -> float:
    try:
        v = float(x)
    except Exception:
        return 0.0
    return v if math.isfinite(v) else 0.0


def non_negative(x) -> float:
    return max(0.0, safe_float(x))
