"""
Canonical k-mer encoding.

Each base takes 2 bits (A=0, C=1, G=2, T=3), so complementary bases are
bitwise complements within their 2-bit field (A<->T is 0<->3, C<->G is 1<->2).
A k-mer packs into the low 2k bits of an integer, first base in the highest
position. The canonical code of a window is min(forward, reverse complement),
which is identical for a k-mer and its reverse complement.

RollingKmerEncoder keeps both encodings up to date in O(1) per base:

  forward  <- ((forward << 2) | code) & mask
  reverse  <- (reverse >> 2) | ((code ^ 3) << 2(k-1))

encode_kmer / reverse_complement_code / canonical_code recompute from
scratch and are kept as the reference the rolling path is checked against.
"""

from __future__ import annotations

from typing import Iterator, Optional

import numpy as np

from .config import MAX_K

BASE_CODES = {"A": 0, "C": 1, "G": 2, "T": 3}
CODE_BASES = "ACGT"


def _check_k(k: int) -> None:
    if not 1 <= k <= MAX_K:
        raise ValueError(f"k must be between 1 and {MAX_K}, got {k}.")


def kmer_mask(k: int) -> int:
    return (1 << (2 * k)) - 1


def encode_kmer(kmer: str) -> int:
    """Forward 2-bit encoding of a k-mer string (no canonicalisation)."""
    _check_k(len(kmer))
    val = 0
    for base in kmer:
        val = (val << 2) | BASE_CODES[base]
    return val


def decode_kmer(code: int, k: int) -> str:
    """Decode a 2k-bit integer back to its k-mer string."""
    _check_k(k)
    code = int(code)
    bases = []
    for _ in range(k):
        bases.append(CODE_BASES[code & 3])
        code >>= 2
    return "".join(reversed(bases))


def reverse_complement_code(code: int, k: int) -> int:
    """Encoding of the reverse complement of the k-mer encoded by 'code'."""
    code = int(code)
    rc = 0
    for _ in range(k):
        rc = (rc << 2) | ((code & 3) ^ 3)
        code >>= 2
    return rc


def canonical_code(code: int, k: int) -> int:
    """Smaller of 'code' and its reverse complement."""
    code = int(code)
    return min(code, reverse_complement_code(code, k))


class RollingKmerEncoder:
    """
    Step function over a stream of bases.

    push() consumes one base and returns the canonical code of the window
    ending at that base, or None while fewer than k bases have been seen.
    Any base outside A/C/G/T raises KeyError; fragments handed to the
    encoder have already been split on such characters.
    """

    __slots__ = ("k", "mask", "rc_shift", "forward", "reverse", "filled")

    def __init__(self, k: int):
        _check_k(k)
        self.k = k
        self.mask = kmer_mask(k)
        self.rc_shift = (k - 1) * 2
        self.reset()

    def reset(self) -> None:
        self.forward = 0
        self.reverse = 0
        self.filled = 0

    def push(self, base: str) -> Optional[int]:
        code = BASE_CODES[base]
        self.forward = ((self.forward << 2) | code) & self.mask
        self.reverse = (self.reverse >> 2) | ((code ^ 3) << self.rc_shift)
        if self.filled < self.k:
            self.filled += 1
            if self.filled < self.k:
                return None
        return self.forward if self.forward < self.reverse else self.reverse


def iter_canonical_codes(fragment: str, k: int) -> Iterator[int]:
    """Yield one canonical code per window of 'fragment', in window order."""
    encoder = RollingKmerEncoder(k)
    for base in fragment:
        code = encoder.push(base)
        if code is not None:
            yield code


def encode_fragment(fragment: str, k: int) -> np.ndarray:
    """
    Build the k-mer batch for one fragment.

    Returns a read-only uint64 array of len(fragment) - k + 1 canonical codes
    (empty when the fragment is shorter than k).
    """
    n_windows = max(len(fragment) - k + 1, 0)
    batch = np.fromiter(iter_canonical_codes(fragment, k), dtype=np.uint64, count=n_windows)
    batch.flags.writeable = False
    return batch
