"""Shared vector utilities (encoding, decoding, hashing, similarity).

These helpers are used by the embedding services, the cluster matcher and the
Elasticsearch stores.
"""

import base64
import math
import struct


def encode_float32_b64(vec: list[float]) -> str:
    """Encode a list of floats as little-endian float32 bytes, then base64.

    Uses ``struct.pack`` with little-endian ``<f`` format for portability.
    """
    if vec is None:
        raise TypeError("vec must not be None")
    if not isinstance(vec, (list, tuple)):
        raise TypeError("vec must be a list or tuple of floats")
    packed = struct.pack(f"<{len(vec)}f", *vec)
    return base64.b64encode(packed).decode("ascii")


def decode_float32_b64(b64: str) -> list[float]:
    """Decode a base64 float32 little-endian encoded vector to ``list[float]``."""
    raw = base64.b64decode(b64)
    if len(raw) % 4 != 0:
        raise ValueError("invalid float32 byte length")
    count = len(raw) // 4
    return list(struct.unpack(f"<{count}f", raw))


def string_hash(text: str) -> int:
    """Deterministic 31-bit string hash used to project features into vectors.

    ``hash = (hash << 5) - hash + code_unit`` over UTF-16 code units, wrapped
    to a signed 32-bit integer at every step, absolute value at the end.
    Stored embeddings depend on this exact formula.
    """
    h = 0
    units = text.encode("utf-16-le")
    for i in range(0, len(units), 2):
        code = units[i] | (units[i + 1] << 8)
        h = ((h << 5) - h + code) & 0xFFFFFFFF
        if h >= 0x80000000:
            h -= 0x100000000
    return abs(h)


def project_features(features: dict[str, float], dimension: int) -> list[float]:
    """Spread named feature values over a ``dimension``-sized vector.

    Each feature touches every position, starting at ``hash % dimension``,
    with ``value * sin(hash * (i + 1))``.  Not an ML embedding: a cheap,
    low-collision pseudo-random projection.
    """
    vector = [0.0] * dimension
    for name, value in features.items():
        h = string_hash(name)
        for i in range(dimension):
            vector[(h + i) % dimension] += value * math.sin(h * (i + 1))
    return vector


def magnitude(vec: list[float]) -> float:
    return math.sqrt(sum(v * v for v in vec))


def l2_normalize(vec: list[float]) -> list[float]:
    """Scale ``vec`` to unit length.  An all-zero vector is returned unchanged."""
    mag = magnitude(vec)
    if mag == 0:
        return list(vec)
    return [v / mag for v in vec]


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity; 0.0 for mismatched lengths or zero vectors."""
    if len(a) != len(b):
        return 0.0
    dot = 0.0
    mag_a = 0.0
    mag_b = 0.0
    for x, y in zip(a, b):
        dot += x * y
        mag_a += x * x
        mag_b += y * y
    denom = math.sqrt(mag_a) * math.sqrt(mag_b)
    return dot / denom if denom > 0 else 0.0


def blend(old: list[float], signal: list[float], rate: float) -> list[float]:
    """Exponential moving average: ``old * (1 - rate) + signal * rate``.

    Missing positions in ``signal`` count as 0; extra positions are ignored.
    """
    return [
        val * (1 - rate) + (signal[i] if i < len(signal) else 0.0) * rate
        for i, val in enumerate(old)
    ]
