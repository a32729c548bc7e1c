from .client import AnnotationClient
from .parsing import (
    ResponseFormatError,
    extract_json,
    parse_annotation,
    parse_corrections,
    parse_full_analysis,
    strip_json_fences,
)

__all__ = [
    "AnnotationClient",
    "ResponseFormatError",
    "extract_json",
    "parse_annotation",
    "parse_corrections",
    "parse_full_analysis",
    "strip_json_fences",
]
