"""
quill — system dependency resolver, cache, and lifecycle executor.
"""

__version__ = "0.4.0"
