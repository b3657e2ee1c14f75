"""
VersionResolver — semver range satisfaction over known versions.

Ranges use the npm dialect systems are published with: ``1.2.3``,
``=1.2.3``, ``>=1.2 <2``, ``~1.2.3``, ``^0.2.0``, ``1.2.x``, ``*``,
hyphen ranges ``1.2 - 1.4`` and ``||`` alternatives. Each range is
desugared into comparator sets evaluated with ``packaging.version``.

A prerelease version only satisfies a comparator set that itself names
a prerelease of the same ``major.minor.patch``.
"""

from __future__ import annotations

import operator
import re
from collections.abc import Iterable

from packaging.version import InvalidVersion, Version

from quill.core.errors import NoSatisfyingVersion

_OPS = {
    ">=": operator.ge,
    "<=": operator.le,
    ">": operator.gt,
    "<": operator.lt,
    "=": operator.eq,
}

_WILDCARDS = frozenset({"x", "X", "*"})

_OP_SPACE = re.compile(r"(<=|>=|<|>|=|~|\^)\s+")
_HYPHEN = re.compile(r"^\s*(\S+)\s+-\s+(\S+)\s*$")
_TOKEN = re.compile(r"^(<=|>=|<|>|=|~>|~|\^)?v?(.*)$")

Comparator = tuple[str, Version]


def parse_version(value: str) -> Version | None:
    """``Version`` for ``value``, or None if it is not a valid version."""
    try:
        return Version(value)
    except InvalidVersion:
        return None


def _release(v: Version) -> tuple[int, int, int]:
    parts = (tuple(v.release) + (0, 0, 0))[:3]
    return parts[0], parts[1], parts[2]


def _partial(text: str) -> tuple[int | None, int | None, int | None, str]:
    """Split ``1.2.x-beta.1`` into ``(1, 2, None, "beta.1")``.

    Build metadata is dropped. Missing or wildcard parts are None.
    """
    text = text.split("+", 1)[0]
    core, _, pre = text.partition("-")
    pieces = core.split(".") if core else []
    if len(pieces) > 3:
        raise ValueError(f"Invalid version: {text}")
    nums: list[int | None] = []
    for piece in pieces:
        if piece in _WILDCARDS:
            nums.append(None)
        elif piece.isdigit():
            nums.append(int(piece))
        else:
            raise ValueError(f"Invalid version: {text}")
    # Anything after a wildcard is a wildcard
    if None in nums:
        first = nums.index(None)
        nums = nums[:first] + [None] * (len(nums) - first)
    nums += [None] * (3 - len(nums))
    return nums[0], nums[1], nums[2], pre


def _v(major: int, minor: int = 0, patch: int = 0, pre: str = "") -> Version:
    text = f"{major}.{minor}.{patch}"
    if pre:
        text = f"{text}-{pre}"
    try:
        return Version(text)
    except InvalidVersion as e:
        raise ValueError(f"Invalid version: {text}") from e


def _tilde(major, minor, patch, pre) -> list[Comparator]:
    if major is None:
        return [(">=", _v(0))]
    if minor is None:
        return [(">=", _v(major)), ("<", _v(major + 1))]
    return [(">=", _v(major, minor, patch or 0, pre)), ("<", _v(major, minor + 1))]


def _caret(major, minor, patch, pre) -> list[Comparator]:
    if major is None:
        return [(">=", _v(0))]
    if minor is None:
        return [(">=", _v(major)), ("<", _v(major + 1))]
    low = _v(major, minor, patch or 0, pre)
    if major > 0:
        high = _v(major + 1)
    elif minor > 0 or patch is None:
        high = _v(0, minor + 1)
    else:
        high = _v(0, 0, patch + 1)
    return [(">=", low), ("<", high)]


def _comparator(op: str, major, minor, patch, pre) -> list[Comparator]:
    if major is None:
        # "*", ">=*": anything. "<*", ">*": nothing.
        return [(">=", _v(0))] if op in ("", "=", ">=", "<=") else [("<", _v(0))]
    if minor is None or patch is None:
        if minor is None:
            low, high = _v(major), _v(major + 1)
        else:
            low, high = _v(major, minor), _v(major, minor + 1)
        if op in ("", "="):
            return [(">=", low), ("<", high)]
        if op == ">":
            return [(">=", high)]
        if op == "<=":
            return [("<", high)]
        return [(op, low)]
    return [(op or "=", _v(major, minor, patch, pre))]


def _hyphen(low_text: str, high_text: str) -> list[Comparator]:
    low = _partial(low_text)
    high = _partial(high_text)
    out = _comparator(">=", *low)
    if high[0] is None:
        return out
    if high[1] is None or high[2] is None:
        return out + _comparator("<=", *high)
    return out + [("<=", _v(*high))]


def parse_range(rng: str) -> list[list[Comparator]]:
    """Desugar a range into OR-ed sets of AND-ed comparators.

    Raises:
        ValueError: If any part of the range is not a valid version.
    """
    alternatives: list[list[Comparator]] = []
    for part in (rng or "").split("||"):
        part = _OP_SPACE.sub(r"\1", part.strip())
        hyphen = _HYPHEN.match(part)
        if hyphen:
            alternatives.append(_hyphen(hyphen.group(1), hyphen.group(2)))
            continue
        comparators: list[Comparator] = []
        for token in part.split() or ["*"]:
            match = _TOKEN.match(token)
            op, rest = match.group(1) or "", match.group(2)
            parsed = _partial(rest)
            if op in ("~", "~>"):
                comparators += _tilde(*parsed)
            elif op == "^":
                comparators += _caret(*parsed)
            else:
                comparators += _comparator(op, *parsed)
        alternatives.append(comparators)
    return alternatives


def _set_allows(comparators: list[Comparator], version: Version) -> bool:
    if not all(_OPS[op](version, bound) for op, bound in comparators):
        return False
    if version.is_prerelease:
        release = _release(version)
        return any(
            bound.is_prerelease and _release(bound) == release
            for _, bound in comparators
        )
    return True


def satisfies(version: str, rng: str) -> bool:
    """Whether ``version`` lies in ``rng``. Invalid input never satisfies."""
    parsed = parse_version(version)
    if parsed is None:
        return False
    try:
        alternatives = parse_range(rng)
    except ValueError:
        return False
    return any(_set_allows(comparators, parsed) for comparators in alternatives)


def max_satisfying(versions: Iterable[str], rng: str, *, system: str = "") -> str:
    """Highest version in ``versions`` matching ``rng``.

    Raises:
        NoSatisfyingVersion: If the set is empty, the range is invalid,
            or nothing matches.
    """
    candidates = [v for v in versions if parse_version(v) is not None]
    if not candidates:
        raise NoSatisfyingVersion(f"no known versions to match {rng!r}", system=system)
    try:
        alternatives = parse_range(rng)
    except ValueError as e:
        raise NoSatisfyingVersion(f"invalid version range {rng!r}", system=system, cause=e) from e

    best: tuple[Version, str] | None = None
    for text in candidates:
        parsed = parse_version(text)
        if any(_set_allows(c, parsed) for c in alternatives):
            if best is None or parsed > best[0]:
                best = (parsed, text)
    if best is None:
        known = ", ".join(sort_versions(candidates))
        raise NoSatisfyingVersion(f"no version satisfies {rng!r} (known: {known})", system=system)
    return best[1]


def sort_versions(versions: Iterable[str]) -> list[str]:
    """Valid versions ascending; invalid ones are dropped."""
    return sorted((v for v in versions if parse_version(v) is not None), key=Version)


def is_newer(candidate: str, current: str) -> bool:
    """Whether ``candidate`` is strictly greater than ``current``."""
    a, b = parse_version(candidate), parse_version(current)
    if a is None or b is None:
        return False
    return a > b
