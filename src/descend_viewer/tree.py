"""
Syntax Tree -> Display Tree transform

Turns the parser's syntax nodes into the nodes drawn by the viewer:
- tokens become leaves labelled with their literal value
- a rule with one branch is drawn with the branch entries as direct children
- a rule with several branches gets one synthetic ``branch`` child per branch
- rules without branches and malformed input are drawn as ``invalid``

Tags are shown as tooltips. A parent always passes the position of a child
inside its branch, so the tooltip tells which requirement produced the node.
"""
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .syntax import Branch, Malformed, RuleNode, SelfReference, SyntaxNode, TokenNode

LEFT_MARK = "〈"
RIGHT_MARK = "〉"


class NodeKind(Enum):
    """Types of nodes in the display tree."""
    VALUE = "value"
    RULE = "rule"
    BRANCH = "branch"
    BRANCHING = "branching"
    INVALID = "invalid"
    SPECIAL = "special"


@dataclass
class DisplayNode:
    """A node handed to the renderer."""
    label: str
    tag: str = ""
    kind: NodeKind = NodeKind.SPECIAL
    children: List['DisplayNode'] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert tree to dictionary for JSON."""
        return {
            'label': self.label,
            'tag': self.tag,
            'kind': self.kind.value,
            'children': [child.to_dict() for child in self.children],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'DisplayNode':
        return cls(
            label=data['label'],
            tag=data.get('tag', ''),
            kind=NodeKind(data.get('kind', NodeKind.SPECIAL.value)),
            children=[cls.from_dict(child) for child in data.get('children', [])],
        )

    def count(self) -> int:
        return 1 + sum(child.count() for child in self.children)


def marker(position: str) -> str:
    return f"{LEFT_MARK}{position}{RIGHT_MARK}"


def transform(node: SyntaxNode, tag: Optional[str] = None) -> DisplayNode:
    """Build a fresh display tree for ``node``.

    ``tag`` is supplied by the parent and always takes precedence over the
    tag the node would pick for itself.
    """
    if isinstance(node, TokenNode):
        return DisplayNode(
            label=json.dumps(node.value, ensure_ascii=False)[1:-1],
            tag=node.symbol if tag is None else tag,
            kind=NodeKind.VALUE,
        )

    if isinstance(node, RuleNode):
        return _transform_rule(node, tag)

    if isinstance(node, SelfReference):
        return DisplayNode(label="self", tag=tag or "", kind=NodeKind.INVALID)

    return DisplayNode(label="?", tag=tag or "", kind=NodeKind.INVALID)


def _transform_rule(node: RuleNode, tag: Optional[str]) -> DisplayNode:
    if not node.branches:
        return DisplayNode(label=node.symbol, tag=tag or "", kind=NodeKind.INVALID)

    if len(node.branches) == 1:
        key, branch = next(iter(node.branches.items()))
        own_tag = branch.reqs if tag is None else tag

        return DisplayNode(
            label=node.symbol,
            tag=f"{own_tag}\t{marker(key)}",
            kind=NodeKind.RULE,
            children=flatten_branch(branch),
        )

    return DisplayNode(
        label=node.symbol,
        tag=tag or "",
        kind=NodeKind.BRANCHING,
        children=[
            DisplayNode(
                label=key,
                tag=branch.reqs,
                kind=NodeKind.BRANCH,
                children=flatten_branch(branch),
            )
            for key, branch in node.branches.items()
        ],
    )


def flatten_branch(branch: Branch) -> List[DisplayNode]:
    """Transform every node of every entry slot, tagged with its position."""
    children = []

    for slot_index, entry in enumerate(branch.entries, 1):
        for sub_index, sub_node in enumerate(entry, 1):
            if len(entry) > 1:
                position = f"{slot_index}.{sub_index}"
            else:
                position = str(slot_index)

            children.append(transform(sub_node, f"{marker(position)}\t{branch.reqs}"))

    return children


def placeholder(label: str) -> DisplayNode:
    """A synthetic node shown when there is no tree to display."""
    return DisplayNode(label=label, kind=NodeKind.SPECIAL)


def render_ascii(node: DisplayNode, prefix: str = "", is_last: bool = True, is_root: bool = True) -> str:
    """Generate ASCII tree."""
    text = node.label
    if node.tag:
        text += "  " + node.tag.replace("\t", " ")
    if node.kind is NodeKind.INVALID:
        text += "  !"

    if is_root:
        result = text + "\n"
        child_prefix = prefix
    else:
        connector = "└── " if is_last else "├── "
        result = prefix + connector + text + "\n"
        child_prefix = prefix + ("    " if is_last else "│   ")

    for i, child in enumerate(node.children):
        result += render_ascii(child, child_prefix, i == len(node.children) - 1, False)

    return result
