"""Proof Pack compliance and disclosure core.

Scores an SME's bundle of compliance evidence, routes it through a
human QA review, and mediates NDA-gated disclosure of the bundle to
prospective buyers with a complete access trail.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
