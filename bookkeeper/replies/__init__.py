"""Reply formatting."""

from bookkeeper.replies.formatter import FALLBACK_MESSAGE, ResponseFormatter

__all__ = ["FALLBACK_MESSAGE", "ResponseFormatter"]
