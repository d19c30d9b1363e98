"""
IJVM Constant Pool
==================

The constant pool is the program-wide ordered table of 32-bit words
loaded by the IJVM. It holds two kinds of entries:

- named constants from the ``.constant`` block, pushed with ``LDC_W``
- one entry per non-entry method, whose value is the method's byte
  offset in the text block and whose index is the operand of
  ``INVOKEVIRTUAL``

Entries keep their declaration order; the index of an entry never changes
once assigned. Method values are filled in by the code generator after
every method has its final size.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Optional

from ijvm_asm.errors import DuplicateSymbolError, OperandError, SourceLocation

if TYPE_CHECKING:
    from ijvm_asm.assembler.method import Method


# Constants must fit a 32-bit word, signed or unsigned
WORD_MIN = -(1 << 31)
WORD_MAX = (1 << 32) - 1


@dataclass
class Constant:
    """
    A constant pool entry.

    Attributes:
        name: Constant or method name
        index: Position in the pool
        value: 32-bit value (method offset for method entries)
        location: Where the entry was declared
        method: The method this entry describes, if any
    """
    name: str
    index: int
    value: int = 0
    location: Optional[SourceLocation] = None
    method: Optional["Method"] = None

    @property
    def is_method(self) -> bool:
        return self.method is not None


class ConstantPool:
    """
    Ordered constant pool with lookup by name.

    Usage:
        pool = ConstantPool()
        pool.add_constant("OBJREF", 0xCAFE)
        pool.add_method(method)
        pool.find_method("add").index      # 1
    """

    def __init__(self):
        self._entries: list[Constant] = []
        self._by_name: dict[str, Constant] = {}

    def add_constant(
        self,
        name: str,
        value: int,
        location: Optional[SourceLocation] = None,
    ) -> Constant:
        """
        Append a named constant.

        Raises:
            DuplicateSymbolError: If the name is already in the pool
            OperandError: If the value does not fit in 32 bits
        """
        if not WORD_MIN <= value <= WORD_MAX:
            raise OperandError(
                f"constant '{name}' value {value} does not fit in 32 bits", location
            )
        return self._append(Constant(name, len(self._entries), value, location))

    def add_method(self, method: "Method", location: Optional[SourceLocation] = None) -> Constant:
        """
        Append an entry for a method.

        Raises:
            DuplicateSymbolError: If the name is already in the pool
        """
        if location is None:
            location = SourceLocation(method.filename, method.line)
        return self._append(
            Constant(method.name, len(self._entries), 0, location, method=method)
        )

    def _append(self, constant: Constant) -> Constant:
        existing = self._by_name.get(constant.name)
        if existing is not None:
            raise DuplicateSymbolError(
                constant.name,
                location=constant.location,
                original_location=existing.location,
            )
        self._entries.append(constant)
        self._by_name[constant.name] = constant
        return constant

    # =========================================================================
    # Lookup
    # =========================================================================

    def find(self, name: str) -> Optional[Constant]:
        """Entry with the given name, or None."""
        return self._by_name.get(name)

    def find_method(self, name: str) -> Optional[Constant]:
        """Method entry with the given name, or None."""
        constant = self._by_name.get(name)
        if constant is None or not constant.is_method:
            return None
        return constant

    def names(self) -> list[str]:
        return [c.name for c in self._entries]

    def method_names(self) -> list[str]:
        return [c.name for c in self._entries if c.is_method]

    def words(self) -> list[int]:
        """Entry values as unsigned 32-bit words, in pool order."""
        return [c.value & 0xFFFFFFFF for c in self._entries]

    def __getitem__(self, index: int) -> Constant:
        return self._entries[index]

    def __iter__(self) -> Iterator[Constant]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
