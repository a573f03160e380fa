"""
User accounts.

Keep this package import light: models are imported where they are used.
"""

__all__: list[str] = []
