"""
rewriter/ — Refined prompt generation

Public API:
    from promptvolley.rewriter import LLMTextRewriter, RewriteContext, RewriteResult
"""

from promptvolley.rewriter.service import (
    LLMTextRewriter,
    RewriteContext,
    RewriteResult,
    TextRewriter,
    decode_rewrite,
)

__all__ = ["LLMTextRewriter", "RewriteContext", "RewriteResult", "TextRewriter", "decode_rewrite"]
