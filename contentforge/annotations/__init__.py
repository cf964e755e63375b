"""Comment scanning and annotation extraction."""

from .catalog import (
    AnnotationCatalog,
    AnnotationItem,
    AnnotationSource,
    ExtractorConfig,
    build_catalog,
    extract_annotations,
    extract_annotations_stream,
)
from .comments import CommentNode, Position, SourceLocation, scan_comments
from .extractors import strip_doc_stars
from .streaming import StreamScanner, iter_comments_stream, scan_comments_stream

__all__ = [
    "AnnotationCatalog",
    "AnnotationItem",
    "AnnotationSource",
    "CommentNode",
    "ExtractorConfig",
    "Position",
    "SourceLocation",
    "StreamScanner",
    "build_catalog",
    "extract_annotations",
    "extract_annotations_stream",
    "iter_comments_stream",
    "scan_comments",
    "scan_comments_stream",
    "strip_doc_stars",
]
