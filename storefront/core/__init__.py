"""
Core package for shared utilities.

Configuration, structured logging, the error taxonomy and token handling
used by every other layer.
"""
