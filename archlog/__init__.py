"""
Archlog - architectural decision log mined from Git history.
"""

__version__ = "0.1.0"
