"""
Background-removal comparison service package.

Exposes reusable primitives for manual color removal, running Replicate
background-removal models side by side, persisting comparison records,
and serving the FastAPI application.
"""

