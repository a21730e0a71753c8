# md2word/math_tree.py

from typing import List, Optional

from .schemas import (AccentNode, FractionNode, GroupNode, LimitNode, MathNode, RadicalNode, ScriptNode, SumNode,
                      TextNode)

SCRIPT_MARKERS = ('^', '_')


def _is_marker(node: MathNode, markers=SCRIPT_MARKERS) -> bool:
    return isinstance(node, TextNode) and node.style is None and node.val in markers


def _flatten_operand(node: MathNode) -> List[MathNode]:
    """A braced operand contributes its (resolved) children; any other node stands alone."""
    if isinstance(node, GroupNode):
        return build_math_tree(node.children)
    return [_resolve_children(node)]


def _resolve_children(node: MathNode) -> MathNode:
    """Resolve scripts inside the child lists of structural nodes."""
    if isinstance(node, GroupNode):
        return GroupNode(children=build_math_tree(node.children))
    if isinstance(node, FractionNode):
        return FractionNode(num=build_math_tree(node.num), den=build_math_tree(node.den))
    if isinstance(node, RadicalNode):
        deg = build_math_tree(node.deg) if node.deg is not None else None
        return RadicalNode(deg=deg, children=build_math_tree(node.children))
    if isinstance(node, AccentNode):
        return AccentNode(accent=node.accent, children=build_math_tree(node.children))
    return node


def build_math_tree(nodes: List[MathNode]) -> List[MathNode]:
    """
    Attach '^' / '_' operands to the node before them.

    Examples:
        x^2               -> script(base=[x], sup=[2])
        \\sum_{i=1}^n     -> sum(sub=[i,=,1], sup=[n])
        \\lim_{x\\to0}    -> limit(sub=[x, →, 0]); a bare \\lim becomes the text "lim".

    Args:
        nodes (List[MathNode]): Flat output of parse_latex_to_structure.

    Returns:
        List[MathNode]: A new list; the input is not modified.
    """
    result: List[MathNode] = []
    i = 0
    count = len(nodes)

    while i < count:
        current = nodes[i]

        if isinstance(current, LimitNode):
            if i + 2 < count and _is_marker(nodes[i + 1], ('_',)):
                result.append(LimitNode(base=current.base, sub=_flatten_operand(nodes[i + 2])))
                i += 3
            else:
                result.append(TextNode(val=current.base, style='plain'))
                i += 1
            continue

        if i + 2 < count and _is_marker(nodes[i + 1]):
            is_sub = nodes[i + 1].val == '_'
            first = _flatten_operand(nodes[i + 2])
            sub: Optional[List[MathNode]] = first if is_sub else None
            sup: Optional[List[MathNode]] = None if is_sub else first
            step = 3

            # The complementary marker may follow immediately: x_i^2 or x^2_i
            if i + 4 < count and _is_marker(nodes[i + 3]) and (nodes[i + 3].val == '_') != is_sub:
                second = _flatten_operand(nodes[i + 4])
                if is_sub:
                    sup = second
                else:
                    sub = second
                step = 5

            if isinstance(current, SumNode):
                result.append(current.model_copy(update={'sub': sub, 'sup': sup}))
            else:
                result.append(ScriptNode(base=[_resolve_children(current)], sub=sub, sup=sup))
            i += step
            continue

        result.append(_resolve_children(current))
        i += 1

    return result
