"""
Crucible HTTP API.
"""
