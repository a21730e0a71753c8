# md2word/schemas.py

from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ==============================================================================
# SECTION 1: MARKDOWN DOCUMENT STRUCTURE
# ==============================================================================
class ContentType(str, Enum):
    PARAGRAPH = 'paragraph'
    CODE_BLOCK = 'code_block'
    TABLE = 'table'
    LIST_ITEM = 'list_item'
    BLOCKQUOTE = 'blockquote'
    HR = 'hr'


class ParsedTable(BaseModel):
    """Header cells plus data rows. Rows may be shorter or longer than the header."""
    headers: List[str] = Field(default_factory=list)
    rows: List[List[str]] = Field(default_factory=list)


class ContentBlock(BaseModel):
    type: ContentType
    content: str = ""
    language: Optional[str] = Field(
        default=None,
        description="Fence info string. The reserved value 'math' marks a captured $$...$$ block."
    )
    table_data: Optional[ParsedTable] = None


class Section(BaseModel):
    title: str
    level: int = 1
    blocks: List[ContentBlock] = Field(default_factory=list)


# ==============================================================================
# SECTION 2: MATH NODE TREE (LaTeX intermediate representation)
# ==============================================================================
class _MathNodeBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class TextNode(_MathNodeBase):
    """A literal run. style=None is used for the bare '^' / '_' script markers."""
    type: Literal['text'] = 'text'
    val: str
    style: Optional[Literal['plain', 'italic']] = None


class CmdNode(_MathNodeBase):
    type: Literal['cmd'] = 'cmd'
    val: str


class GroupNode(_MathNodeBase):
    type: Literal['group'] = 'group'
    children: List["MathNode"] = Field(default_factory=list)


class FractionNode(_MathNodeBase):
    type: Literal['fraction'] = 'fraction'
    num: List["MathNode"] = Field(default_factory=list)
    den: List["MathNode"] = Field(default_factory=list)


class RadicalNode(_MathNodeBase):
    type: Literal['radical'] = 'radical'
    deg: Optional[List["MathNode"]] = None
    children: List["MathNode"] = Field(default_factory=list)


class SumNode(_MathNodeBase):
    type: Literal['sum'] = 'sum'
    sub: Optional[List["MathNode"]] = None
    sup: Optional[List["MathNode"]] = None
    is_integral: bool = False
    symbol: str = '∑'


class LimitNode(_MathNodeBase):
    type: Literal['limit'] = 'limit'
    base: str = 'lim'
    sub: List["MathNode"] = Field(default_factory=list)


class AccentNode(_MathNodeBase):
    type: Literal['accent'] = 'accent'
    accent: str
    children: List["MathNode"] = Field(default_factory=list)


class ScriptNode(_MathNodeBase):
    type: Literal['script'] = 'script'
    base: List["MathNode"] = Field(default_factory=list)
    sub: Optional[List["MathNode"]] = None
    sup: Optional[List["MathNode"]] = None


MathNode = Annotated[
    Union[TextNode, CmdNode, GroupNode, FractionNode, RadicalNode, SumNode, LimitNode, AccentNode, ScriptNode],
    Field(discriminator='type')
]

for _model in (GroupNode, FractionNode, RadicalNode, SumNode, LimitNode, AccentNode, ScriptNode):
    _model.model_rebuild()


# ==============================================================================
# SECTION 3: EXPORT OPTIONS
# ==============================================================================
ChartTheme = Literal['default', 'neutral', 'forest', 'base']
MathMode = Literal['native', 'image']


class ExportOptions(BaseModel):
    chart_theme: ChartTheme = Field(default='default', description="Theme passed verbatim to the diagram renderer.")
    math_mode: MathMode = Field(
        default='native',
        description="'native' emits OMML; 'image' embeds a rasterized PNG and falls back to OMML on failure."
    )
    document_title: Optional[str] = Field(default=None, description="Optional Title paragraph emitted first.")
    unescape_latex: bool = Field(
        default=False,
        description="Restore escaped math markers (\\$, \\_, \\{, \\\\frac) before parsing."
    )
