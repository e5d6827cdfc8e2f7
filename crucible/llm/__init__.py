"""
Generation service client and pricing.
"""

from .client import (
    GenerationClient,
    GenerationResult,
    ModelInvocationError,
    extract_text,
    extract_usage,
)
from .pricing import MODEL_PRICING, estimate_cost

__all__ = [
    "GenerationClient",
    "GenerationResult",
    "ModelInvocationError",
    "extract_text",
    "extract_usage",
    "MODEL_PRICING",
    "estimate_cost",
]
