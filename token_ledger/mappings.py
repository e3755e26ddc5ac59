"""
Zero-Default Amount Mapping

Backing store for balances and allowances. Absent keys read as zero and
reads never insert, so queries about unknown accounts cannot grow the map.
A key is recorded on its first non-zero write and is never removed
afterwards; spending it down leaves an explicit zero.

Not thread-safe on its own: the owning ledger serializes access.
"""

from typing import Dict, Generic, Hashable, Iterator, List, Tuple, TypeVar

K = TypeVar("K", bound=Hashable)


class ZeroDefaultMap(Generic[K]):
    """Mapping of keys to unsigned integer amounts with an implicit zero"""

    def __init__(self):
        self._values: Dict[K, int] = {}

    def get(self, key: K) -> int:
        """Get the recorded amount, or zero if the key was never written"""
        return self._values.get(key, 0)

    def set(self, key: K, value: int) -> None:
        """Record an amount; a zero write to an unknown key is a no-op"""
        if value == 0 and key not in self._values:
            return
        self._values[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[K]:
        return iter(list(self._values))

    def items(self) -> List[Tuple[K, int]]:
        return list(self._values.items())

    def total(self) -> int:
        """Sum of all recorded amounts"""
        return sum(self._values.values())

    def snapshot(self) -> Dict[K, int]:
        """Copy of the recorded entries, safe to hand to callers"""
        return dict(self._values)
