"""pacman-compatible version comparison.

Versions have the shape ``[epoch:]version[-release]``. The epoch dominates,
then the version, then the release (only when both sides carry one). Each part
is compared segment by segment: runs of digits numerically, runs of letters
lexically, and a letter run always sorts before a digit run, so ``1.0a`` is
older than ``1.0`` and ``1.0`` is older than ``1.0.1``.
"""

from __future__ import annotations

import string

_DIGITS = frozenset(string.digits)
_ALPHA = frozenset(string.ascii_letters)
_ALNUM = _DIGITS | _ALPHA


def vercmp(a: str, b: str) -> int:
    """Return -1, 0 or 1 as ``a`` is older than, equal to, or newer than ``b``."""
    if a == b:
        return 0
    epoch_a, version_a, release_a = parse_evr(a)
    epoch_b, version_b, release_b = parse_evr(b)

    ret = _compare_segments(epoch_a, epoch_b)
    if ret == 0:
        ret = _compare_segments(version_a, version_b)
        if ret == 0 and release_a is not None and release_b is not None:
            ret = _compare_segments(release_a, release_b)
    return ret


def is_newer(candidate: str, current: str) -> bool:
    """Return True when ``candidate`` sorts strictly after ``current``."""
    return vercmp(candidate, current) > 0


def parse_evr(evr: str) -> tuple[str, str, str | None]:
    """Split ``[epoch:]version[-release]`` into its three parts."""
    index = 0
    while index < len(evr) and evr[index] in _DIGITS:
        index += 1

    if index < len(evr) and evr[index] == ":":
        epoch = evr[:index] or "0"
        rest = evr[index + 1:]
    else:
        epoch = "0"
        rest = evr

    version, sep, release = rest.rpartition("-")
    if not sep:
        return epoch, rest, None
    return epoch, version, release


def _compare_segments(a: str, b: str) -> int:
    if a == b:
        return 0

    one = two = 0
    while one < len(a) and two < len(b):
        start_one, start_two = one, two
        while one < len(a) and a[one] not in _ALNUM:
            one += 1
        while two < len(b) and b[two] not in _ALNUM:
            two += 1
        if one >= len(a) or two >= len(b):
            break

        # differing separator lengths decide on their own
        if one - start_one != two - start_two:
            return -1 if one - start_one < two - start_two else 1

        charset = _DIGITS if a[one] in _DIGITS else _ALPHA
        end_one, end_two = one, two
        while end_one < len(a) and a[end_one] in charset:
            end_one += 1
        while end_two < len(b) and b[end_two] in charset:
            end_two += 1

        if end_two == two:
            # segment types differ: numbers beat letters
            return 1 if charset is _DIGITS else -1

        seg_one, seg_two = a[one:end_one], b[two:end_two]
        if charset is _DIGITS:
            seg_one = seg_one.lstrip("0")
            seg_two = seg_two.lstrip("0")
            if len(seg_one) != len(seg_two):
                return 1 if len(seg_one) > len(seg_two) else -1
        if seg_one != seg_two:
            return -1 if seg_one < seg_two else 1

        one, two = end_one, end_two

    rest_one, rest_two = a[one:], b[two:]
    if not rest_one and not rest_two:
        return 0
    # a trailing letter run never beats an empty string
    if (not rest_one and rest_two[0] not in _ALPHA) or (rest_one and rest_one[0] in _ALPHA):
        return -1
    return 1
