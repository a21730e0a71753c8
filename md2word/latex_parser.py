# md2word/latex_parser.py

import string
from typing import List, Optional

from .schemas import (AccentNode, CmdNode, FractionNode, GroupNode, LimitNode, MathNode, RadicalNode, SumNode,
                      TextNode)

# --- Symbol and Function Maps ---
GREEK_LETTERS = {'alpha': 'α', 'beta': 'β', 'gamma': 'γ', 'delta': 'δ', 'epsilon': 'ε', 'zeta': 'ζ',
                 'eta': 'η', 'theta': 'θ', 'iota': 'ι', 'kappa': 'κ', 'lambda': 'λ', 'mu': 'μ', 'nu': 'ν',
                 'xi': 'ξ', 'omicron': 'ο', 'pi': 'π', 'rho': 'ρ', 'sigma': 'σ', 'tau': 'τ',
                 'upsilon': 'υ', 'phi': 'φ', 'chi': 'χ', 'psi': 'ψ', 'omega': 'ω', 'Gamma': 'Γ',
                 'Delta': 'Δ', 'Theta': 'Θ', 'Lambda': 'Λ', 'Xi': 'Ξ', 'Pi': 'Π', 'Sigma': 'Σ',
                 'Upsilon': 'Υ', 'Phi': 'Φ', 'Psi': 'Ψ', 'Omega': 'Ω', 'varepsilon': 'ɛ', 'vartheta': 'ϑ',
                 'varpi': 'ϖ', 'varrho': 'ϱ', 'varsigma': 'ς', 'varphi': 'ϕ'}
OPERATORS = {'pm': '±', 'mp': '∓', 'times': '×', 'div': '÷', 'cdot': '·', 'ast': '∗', 'cup': '∪', 'cap': '∩',
             'in': '∈', 'notin': '∉', 'subset': '⊂', 'supset': '⊃', 'subseteq': '⊆', 'supseteq': '⊇',
             'neq': '≠', 'ne': '≠', 'equiv': '≡', 'approx': '≈', 'sim': '∼', 'propto': '∝',
             'le': '≤', 'leq': '≤', 'ge': '≥', 'geq': '≥', 'll': '≪', 'gg': '≫',
             'infty': '∞', 'nabla': '∇', 'partial': '∂', 'forall': '∀', 'exists': '∃',
             'angle': '∠', 'hbar': 'ħ', 'prime': '′', 'leftarrow': '←', 'rightarrow': '→', 'to': '→',
             'uparrow': '↑', 'downarrow': '↓', 'leftrightarrow': '↔', 'Leftarrow': '⇐', 'Rightarrow': '⇒',
             'implies': '⇒', 'Uparrow': '⇑', 'Downarrow': '⇓', 'Leftrightarrow': '⇔', 'iff': '⇔',
             'mid': '∣', 'circ': '∘', 'emptyset': '∅', 'neg': '¬', 'land': '∧', 'lor': '∨'}
SYMBOLS = {'langle': '⟨', 'rangle': '⟩', 'dots': '…', 'ldots': '…', 'cdots': '⋯', 'vdots': '⋮', 'ddots': '⋱',
           '{': '{', '}': '}', '|': '‖', '%': '%', '&': '&', '#': '#', '$': '$', '_': '_', '\\': ' '}
SYMBOL_MAP = {**GREEK_LETTERS, **OPERATORS, **SYMBOLS}

# Characters that stand for themselves in upright type
LITERAL_SYMBOLS = set(' ,;|=+-<>()[]{}')

KNOWN_FUNCTIONS = {'log', 'sin', 'cos', 'tan', 'ln', 'max', 'min', 'exp', 'det', 'sup', 'inf', 'lim',
                   'csc', 'sec', 'cot', 'sinh', 'cosh', 'tanh', 'coth', 'arcsin', 'arccos', 'arctan',
                   'dim', 'gcd', 'arg'}
NARY_OPERATORS = {'sum': ('∑', False), 'prod': ('∏', False), 'int': ('∫', True), 'oint': ('∮', True),
                  'iint': ('∬', True)}
ACCENTS = {'vec', 'bar', 'hat', 'dot', 'ddot'}
SPACING_COMMANDS = {',', ';', ' ', 'quad', 'qquad'}
# Commands whose argument is kept as upright literal text
TEXT_COMMANDS = {'text', 'mathrm', 'operatorname'}
# Font switches whose argument is kept as ordinary math
FONT_COMMANDS = {'mathbf', 'mathit', 'mathcal', 'mathbb', 'boldsymbol'}

_DIGITS = set(string.digits + '.')
_LETTERS = set(string.ascii_letters)


class LatexParser:
    """
    Cursor-based recursive-descent reader that turns LaTeX source into a flat MathNode list.

    Script markers ('^' and '_') are emitted as bare text nodes and resolved later by
    math_tree.build_math_tree. Unknown input never raises: every call to parse_next
    consumes at least one character.
    """

    def __init__(self, latex: str):
        self.latex = latex
        self.pos = 0
        self.length = len(latex)

    def has_chars(self) -> bool:
        return self.pos < self.length

    def peek(self) -> Optional[str]:
        return self.latex[self.pos] if self.has_chars() else None

    def advance(self) -> Optional[str]:
        char = self.peek()
        if char is not None:
            self.pos += 1
        return char

    def skip_whitespace(self):
        while self.has_chars() and self.latex[self.pos].isspace():
            self.pos += 1

    def parse(self) -> List[MathNode]:
        nodes: List[MathNode] = []
        while self.has_chars():
            nodes.extend(self.parse_next())
        return nodes

    def read_group(self) -> List[MathNode]:
        """Read from '{' to the matching '}'. Inner braces are consumed by nested calls."""
        self.advance()
        nodes: List[MathNode] = []
        while self.has_chars() and self.peek() != '}':
            nodes.extend(self.parse_next())
        self.advance()
        return nodes

    def read_optional_group(self) -> Optional[List[MathNode]]:
        """Read a '[...]' argument if one follows (after whitespace), otherwise leave the cursor alone."""
        lookahead = self.pos
        while lookahead < self.length and self.latex[lookahead].isspace():
            lookahead += 1
        if lookahead >= self.length or self.latex[lookahead] != '[':
            return None

        self.pos = lookahead + 1
        nodes: List[MathNode] = []
        while self.has_chars() and self.peek() != ']':
            nodes.extend(self.parse_next())
        self.advance()
        return nodes

    def read_argument(self) -> List[MathNode]:
        """A braced group, or else the single next token."""
        self.skip_whitespace()
        if self.peek() == '{':
            return self.read_group()
        return self.parse_next()

    def parse_next(self) -> List[MathNode]:
        char = self.peek()
        if char is None:
            return []

        if char == '{':
            return [GroupNode(children=self.read_group())]

        if char == '\\':
            return self._parse_command()

        if char in ('^', '_'):
            self.advance()
            return [TextNode(val=char)]

        if char in LITERAL_SYMBOLS:
            self.advance()
            return [TextNode(val=char, style='plain')]

        if char.isspace():
            self.advance()
            return []

        if char in _DIGITS:
            start = self.pos
            while self.has_chars() and self.latex[self.pos] in _DIGITS:
                self.pos += 1
            return [TextNode(val=self.latex[start:self.pos], style='plain')]

        self.advance()
        return [TextNode(val=char, style='italic')]

    def _read_command_name(self) -> str:
        self.advance()
        start = self.pos
        while self.has_chars() and self.latex[self.pos] in _LETTERS:
            self.pos += 1
        name = self.latex[start:self.pos]
        if not name and self.has_chars():
            name = self.advance()
        return name

    def _parse_command(self) -> List[MathNode]:
        cmd = self._read_command_name()
        if not cmd:
            return []

        if cmd in ('left', 'right'):
            return []
        if cmd in SPACING_COMMANDS:
            return [TextNode(val=' ', style='plain')]
        if cmd == '!':
            return []

        if cmd == 'frac':
            num = self.read_argument()
            den = self.read_argument()
            return [FractionNode(num=num, den=den)]
        if cmd == 'sqrt':
            deg = self.read_optional_group()
            return [RadicalNode(deg=deg, children=self.read_argument())]
        if cmd in ACCENTS:
            return [AccentNode(accent=cmd, children=self.read_argument())]
        if cmd in NARY_OPERATORS:
            symbol, is_integral = NARY_OPERATORS[cmd]
            return [SumNode(symbol=symbol, is_integral=is_integral)]
        if cmd == 'lim':
            return [LimitNode(base='lim', sub=[])]
        if cmd in KNOWN_FUNCTIONS:
            return [TextNode(val=cmd, style='plain')]

        if cmd in TEXT_COMMANDS:
            self.skip_whitespace()
            content = self.read_group() if self.peek() == '{' else []
            text = ''.join(node.val if isinstance(node, TextNode) else '' for node in content)
            return [TextNode(val=text, style='plain')]
        if cmd in FONT_COMMANDS:
            return [GroupNode(children=self.read_argument())]

        if cmd in SYMBOL_MAP:
            return [TextNode(val=SYMBOL_MAP[cmd], style='plain')]
        if cmd in LITERAL_SYMBOLS:
            return [TextNode(val=cmd, style='plain')]

        return [CmdNode(val=cmd)]


def parse_latex_to_structure(latex: str) -> List[MathNode]:
    """Tokenize a LaTeX math string into a flat list of MathNodes (scripts still unresolved)."""
    return LatexParser(latex).parse()
