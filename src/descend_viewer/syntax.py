"""
Syntax tree model for the parser's JSON output.

The parser emits one JSON document per parse. Every object is either a token
(``{"symbol", "value"}``) or a rule (``{"symbol", "branches"}``). Entries may
also hold a bare string, which the parser uses as a placeholder for a rule
referring to itself. The shape of every object is checked once in
:func:`decode`; the rest of the package dispatches on the node classes below.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Union


@dataclass(frozen=True)
class TokenNode:
    """A terminal produced by the lexer."""
    symbol: str
    value: str

    def to_json(self) -> Dict[str, Any]:
        return {"symbol": self.symbol, "value": self.value}


@dataclass(frozen=True)
class Branch:
    """One grammar alternative a rule actually satisfied."""
    reqs: str
    entries: List[List["SyntaxNode"]] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {
            "reqs": self.reqs,
            "entries": [[node.to_json() for node in entry] for entry in self.entries],
        }


@dataclass(frozen=True)
class RuleNode:
    """A non-terminal with zero, one or several satisfied branches."""
    symbol: str
    branches: Dict[str, Branch] = field(default_factory=dict)

    def to_json(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "branches": {key: branch.to_json() for key, branch in self.branches.items()},
        }


@dataclass(frozen=True)
class SelfReference:
    """Bare string placeholder for a recursive reference."""
    name: str

    def to_json(self) -> str:
        return self.name


@dataclass(frozen=True)
class Malformed:
    """Anything that is neither a token nor a rule."""
    raw: Any

    def to_json(self) -> Any:
        return self.raw


SyntaxNode = Union[TokenNode, RuleNode, SelfReference, Malformed]


def decode(obj: Any) -> SyntaxNode:
    """Convert decoded JSON into a syntax node. Never raises."""
    if isinstance(obj, str):
        return SelfReference(obj)

    if not isinstance(obj, dict) or not isinstance(obj.get("symbol"), str):
        return Malformed(obj)

    has_value = "value" in obj
    has_branches = "branches" in obj

    if has_value and not has_branches:
        if not isinstance(obj["value"], str):
            return Malformed(obj)
        return TokenNode(obj["symbol"], obj["value"])

    if has_branches and not has_value:
        branches = obj["branches"]
        if not isinstance(branches, dict):
            return Malformed(obj)

        decoded = {}
        for key, branch in branches.items():
            if not isinstance(branch, dict) or not isinstance(branch.get("entries", []), list):
                return Malformed(obj)
            decoded[str(key)] = Branch(
                reqs=str(branch.get("reqs", "")),
                entries=[_decode_entry(entry) for entry in branch.get("entries", [])],
            )
        return RuleNode(obj["symbol"], decoded)

    return Malformed(obj)


def _decode_entry(entry: Any) -> List[SyntaxNode]:
    # A slot should always be a list; anything else is kept as one bad node
    if isinstance(entry, list):
        return [decode(node) for node in entry]
    return [Malformed(entry)]
