"""
Symbol Registry
Name-to-symbol resolution scoped to a single analysis.
"""

from typing import Dict, Iterable, Iterator, Union
import logging

import sympy as sp
from sympy import Symbol

logger = logging.getLogger(__name__)


class SymbolRegistry:
    """
    Maps parameter and variable names to sympy symbols.

    A registry is created for one solve call, filled with the symbols of
    the problem being solved, and cleared when the call returns. Sweep
    and fixed-parameter mappings may then use plain strings as keys.

    Example:
        >>> with SymbolRegistry.for_problem(problem) as registry:
        ...     omega = registry.lookup("omega")
    """

    def __init__(self, symbols: Iterable[Symbol] = ()):
        self._symbols: Dict[str, Symbol] = {}
        for sym in symbols:
            self.register(sym)

    @classmethod
    def for_problem(cls, problem) -> "SymbolRegistry":
        return cls(list(problem.parameters) + list(problem.variables))

    def register(self, symbol: Symbol) -> Symbol:
        """Add an existing symbol. Two different symbols may not share a name."""
        name = str(symbol)
        existing = self._symbols.get(name)
        if existing is not None and existing != symbol:
            raise ValueError(f"Name '{name}' is already bound to a different symbol")
        self._symbols[name] = symbol
        return symbol

    def declare(self, name: str, **assumptions) -> Symbol:
        """Return the symbol called `name`, creating it if needed."""
        if name in self._symbols:
            return self._symbols[name]
        sym = sp.Symbol(name, **assumptions)
        self._symbols[name] = sym
        logger.debug(f"Declared symbol {name}")
        return sym

    def lookup(self, name: str) -> Symbol:
        try:
            return self._symbols[name]
        except KeyError:
            raise KeyError(f"Symbol '{name}' is not declared") from None

    def resolve(self, key: Union[str, Symbol]) -> Symbol:
        """Accept either a symbol or its name."""
        if isinstance(key, str):
            return self.lookup(key)
        return key

    def resolve_mapping(self, mapping) -> Dict[Symbol, object]:
        return {self.resolve(k): v for k, v in dict(mapping).items()}

    def clear(self) -> None:
        self._symbols.clear()

    def __contains__(self, key) -> bool:
        return str(key) in self._symbols

    def __iter__(self) -> Iterator[Symbol]:
        return iter(list(self._symbols.values()))

    def __len__(self) -> int:
        return len(self._symbols)

    def __enter__(self) -> "SymbolRegistry":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.clear()
