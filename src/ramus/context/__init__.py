"""Context assembly: path resolution, compression and prompt composition."""

from ramus.context.compressor import CompressionResult, ContextCompressor
from ramus.context.prompt import compose_system_prompt
from ramus.context.resolver import ContextPathResolver

__all__ = [
    "CompressionResult",
    "ContextCompressor",
    "ContextPathResolver",
    "compose_system_prompt",
]
