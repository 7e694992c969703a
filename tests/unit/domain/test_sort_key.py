"""Tests for fractional sort keys."""

import pytest

from playmirror.domain.exceptions import ValidationError
from playmirror.domain.value_objects import key_between, keys_between, validate_sort_key


class TestKeyBetween:
    """Test single key generation."""

    def test_first_key(self) -> None:
        assert key_between(None, None) == "a0"

    def test_append_after(self) -> None:
        assert key_between("a0", None) == "a1"

    def test_prepend_before(self) -> None:
        assert key_between(None, "a0") == "Zz"

    def test_between_adjacent_integers_uses_fraction(self) -> None:
        assert key_between("a0", "a1") == "a0V"

    def test_integer_part_grows_on_overflow(self) -> None:
        assert key_between("az", None) == "b00"

    def test_key_is_strictly_between(self) -> None:
        prev, next_ = "a0", "a0V"
        key = key_between(prev, next_)
        assert prev < key < next_

    def test_repeated_insert_at_same_spot_stays_ordered(self) -> None:
        """Insert 50 times right after "a0" - every key lands between its bounds."""
        low, high = "a0", "a1"
        for _ in range(50):
            key = key_between(low, high)
            assert low < key < high
            high = key

    def test_repeated_append_stays_ordered(self) -> None:
        key = key_between(None, None)
        for _ in range(200):
            following = key_between(key, None)
            assert key < following
            key = following

    def test_repeated_prepend_stays_ordered(self) -> None:
        key = key_between(None, None)
        for _ in range(200):
            before = key_between(None, key)
            assert before < key
            key = before

    def test_rejects_equal_bounds(self) -> None:
        with pytest.raises(ValidationError):
            key_between("a0", "a0")

    def test_rejects_reversed_bounds(self) -> None:
        with pytest.raises(ValidationError):
            key_between("a1", "a0")

    def test_rejects_malformed_key(self) -> None:
        with pytest.raises(ValidationError):
            key_between("a", None)


class TestKeysBetween:
    """Test bulk key generation."""

    def test_zero_count(self) -> None:
        assert keys_between(None, None, 0) == []

    def test_append_many(self) -> None:
        keys = keys_between("a0", None, 5)
        assert keys == ["a1", "a2", "a3", "a4", "a5"]

    def test_prepend_many_is_ascending(self) -> None:
        keys = keys_between(None, "a0", 5)
        assert keys == sorted(keys)
        assert len(set(keys)) == 5
        assert keys[-1] < "a0"

    def test_between_bounds(self) -> None:
        keys = keys_between("a0", "a1", 10)
        assert keys == sorted(keys)
        assert len(set(keys)) == 10
        assert all("a0" < key < "a1" for key in keys)


class TestValidateSortKey:
    """Test key validation."""

    @pytest.mark.parametrize("key", ["a0", "a0V", "Zz", "b00", "a1G"])
    def test_valid_keys(self, key: str) -> None:
        validate_sort_key(key)

    @pytest.mark.parametrize("key", ["", "a", "a00", "a0!", "b0"])
    def test_invalid_keys(self, key: str) -> None:
        with pytest.raises(ValidationError):
            validate_sort_key(key)
