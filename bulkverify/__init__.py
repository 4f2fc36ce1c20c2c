"""Bulk email verification service.

Upload email lists, run them through the Bouncify bulk verifier, and share
results with teammates under read/write grants.
"""

__version__ = "0.1.0"
