"""
Frontier idea pool: sponsorship, aging and weighted pivot selection.
"""

from .pool import FrontierIdea, FrontierPool, idea_id_for, selection_weight

__all__ = [
    "FrontierIdea",
    "FrontierPool",
    "idea_id_for",
    "selection_weight",
]
