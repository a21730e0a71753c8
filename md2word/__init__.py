# md2word/__init__.py

from .doc_generator import DocumentPackagingError, create_document, export_to_file
from .latex_converter import convert_latex_to_math, latex_to_omml
from .markdown_parser import parse_markdown_to_sections
from .schemas import ExportOptions

__all__ = [
    "DocumentPackagingError",
    "ExportOptions",
    "convert_latex_to_math",
    "create_document",
    "export_to_file",
    "latex_to_omml",
    "parse_markdown_to_sections",
]
