"""Domain value objects."""

from playmirror.domain.value_objects.sort_key import (
    BASE_62_DIGITS,
    key_between,
    keys_between,
    validate_sort_key,
)

__all__ = ["BASE_62_DIGITS", "key_between", "keys_between", "validate_sort_key"]
