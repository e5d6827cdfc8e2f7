"""
Cost accounting and the session budget governor.
"""

from .governor import CostEntry, CostGovernor

__all__ = ["CostEntry", "CostGovernor"]
