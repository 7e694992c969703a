"""Fractional sort keys for playlist membership.

Hey future me - this is why inserting a track never renumbers the playlist!

A key is an "integer part" followed by an optional "fraction part", both in base 62
(0-9, A-Z, a-z - ASCII order, so plain string comparison gives the right order).

INTEGER PART:
The first character encodes how many digits the integer part has:
    'a' → 1 digit ("a0" .. "az"), 'b' → 2 digits ("b00" .. "bzz"), ... 'z' → 26 digits
    'Z' → 1 digit but smaller than every 'a' key, 'Y' → 2 digits, ... 'A' → 26 digits
So "Zz" < "a0" < "a1" < "b00" and we can keep appending/prepending forever
without the fraction part growing.

FRACTION PART:
Only used when we insert between two keys with no free integer in between.
It never ends in '0' (otherwise "a0V" and "a0V0" would be equal positions).

    key_between(None, None)   → "a0"
    key_between("a0", None)   → "a1"
    key_between(None, "a0")   → "Zz"
    key_between("a0", "a1")   → "a0V"

Invariant: prev < key_between(prev, next) < next, always, with plain str comparison.
"""

from playmirror.domain.exceptions import ValidationError

BASE_62_DIGITS = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"

_ZERO = BASE_62_DIGITS[0]
_SMALLEST_INTEGER = "A" + _ZERO * 26


def _midpoint(a: str, b: str | None) -> str:
    """Fraction strictly between a and b (b=None means "1.0")."""
    if b is not None and a >= b:
        raise ValidationError(f"Fraction bounds out of order: {a!r} >= {b!r}")
    if a.endswith(_ZERO) or (b is not None and b.endswith(_ZERO)):
        raise ValidationError("Fraction part must not end with a zero digit")

    if b is not None:
        # Skip the common prefix (a is padded with zeros)
        n = 0
        while n < len(b) and (a[n] if n < len(a) else _ZERO) == b[n]:
            n += 1
        if n > 0:
            return b[:n] + _midpoint(a[n:], b[n:])

    digit_a = BASE_62_DIGITS.index(a[0]) if a else 0
    digit_b = BASE_62_DIGITS.index(b[0]) if b is not None else len(BASE_62_DIGITS)

    if digit_b - digit_a > 1:
        return BASE_62_DIGITS[(digit_a + digit_b + 1) // 2]

    # Adjacent first digits
    if b is not None and len(b) > 1:
        return b[:1]
    return BASE_62_DIGITS[digit_a] + _midpoint(a[1:], None)


def _integer_length(head: str) -> int:
    if "a" <= head <= "z":
        return ord(head) - ord("a") + 2
    if "A" <= head <= "Z":
        return ord("Z") - ord(head) + 2
    raise ValidationError(f"Invalid sort key head: {head!r}")


def _integer_part(key: str) -> str:
    length = _integer_length(key[0])
    if length > len(key):
        raise ValidationError(f"Invalid sort key: {key!r}")
    return key[:length]


def _validate_integer(value: str) -> None:
    if len(value) != _integer_length(value[0]):
        raise ValidationError(f"Invalid integer part of sort key: {value!r}")


def validate_sort_key(key: str) -> None:
    """Raise ValidationError if key is not a well-formed sort key."""
    if not key:
        raise ValidationError("Sort key cannot be empty")
    if key == _SMALLEST_INTEGER:
        raise ValidationError(f"Invalid sort key: {key!r}")
    integer = _integer_part(key)
    if any(char not in BASE_62_DIGITS for char in key):
        raise ValidationError(f"Invalid character in sort key: {key!r}")
    if key[len(integer) :].endswith(_ZERO):
        raise ValidationError(f"Invalid sort key (trailing zero): {key!r}")


def _increment_integer(value: str) -> str | None:
    _validate_integer(value)
    head, digits = value[0], list(value[1:])
    carry = True
    i = len(digits) - 1
    while carry and i >= 0:
        d = BASE_62_DIGITS.index(digits[i]) + 1
        if d == len(BASE_62_DIGITS):
            digits[i] = _ZERO
        else:
            digits[i] = BASE_62_DIGITS[d]
            carry = False
        i -= 1

    if not carry:
        return head + "".join(digits)
    if head == "Z":
        return "a" + _ZERO
    if head == "z":
        return None
    new_head = chr(ord(head) + 1)
    if new_head > "a":
        digits.append(_ZERO)
    else:
        digits.pop()
    return new_head + "".join(digits)


def _decrement_integer(value: str) -> str | None:
    _validate_integer(value)
    head, digits = value[0], list(value[1:])
    borrow = True
    i = len(digits) - 1
    while borrow and i >= 0:
        d = BASE_62_DIGITS.index(digits[i]) - 1
        if d == -1:
            digits[i] = BASE_62_DIGITS[-1]
        else:
            digits[i] = BASE_62_DIGITS[d]
            borrow = False
        i -= 1

    if not borrow:
        return head + "".join(digits)
    if head == "a":
        return "Z" + BASE_62_DIGITS[-1]
    if head == "A":
        return None
    new_head = chr(ord(head) - 1)
    if new_head < "Z":
        digits.append(BASE_62_DIGITS[-1])
    else:
        digits.pop()
    return new_head + "".join(digits)


def key_between(prev: str | None, next: str | None) -> str:
    """Generate a key sorting strictly between prev and next.

    Args:
        prev: Key of the item before the insertion point (None = start of list)
        next: Key of the item after the insertion point (None = end of list)

    Raises:
        ValidationError: malformed keys, or prev >= next
    """
    if prev is not None:
        validate_sort_key(prev)
    if next is not None:
        validate_sort_key(next)
    if prev is not None and next is not None and prev >= next:
        raise ValidationError(f"Sort keys out of order: {prev!r} >= {next!r}")

    if prev is None:
        if next is None:
            return "a" + _ZERO
        int_next = _integer_part(next)
        frac_next = next[len(int_next) :]
        if int_next == _SMALLEST_INTEGER:
            return int_next + _midpoint("", frac_next)
        if int_next < next:
            return int_next
        decremented = _decrement_integer(int_next)
        if decremented is None:
            raise ValidationError("Cannot generate a key before the smallest key")
        return decremented

    if next is None:
        int_prev = _integer_part(prev)
        frac_prev = prev[len(int_prev) :]
        incremented = _increment_integer(int_prev)
        return int_prev + _midpoint(frac_prev, None) if incremented is None else incremented

    int_prev = _integer_part(prev)
    frac_prev = prev[len(int_prev) :]
    int_next = _integer_part(next)
    frac_next = next[len(int_next) :]
    if int_prev == int_next:
        return int_prev + _midpoint(frac_prev, frac_next)
    incremented = _increment_integer(int_prev)
    if incremented is None:
        raise ValidationError("Cannot generate a key after the largest key")
    if incremented < next:
        return incremented
    return int_prev + _midpoint(frac_prev, None)


def keys_between(prev: str | None, next: str | None, count: int) -> list[str]:
    """Generate count ascending keys between prev and next.

    Bisects when both bounds are set so the keys stay short for bulk inserts.
    """
    if count <= 0:
        return []
    if count == 1:
        return [key_between(prev, next)]

    if next is None:
        key = key_between(prev, next)
        keys = [key]
        for _ in range(count - 1):
            key = key_between(key, next)
            keys.append(key)
        return keys

    if prev is None:
        key = key_between(prev, next)
        keys = [key]
        for _ in range(count - 1):
            key = key_between(prev, key)
            keys.append(key)
        keys.reverse()
        return keys

    mid = count // 2
    key = key_between(prev, next)
    return [
        *keys_between(prev, key, mid),
        key,
        *keys_between(key, next, count - mid - 1),
    ]
