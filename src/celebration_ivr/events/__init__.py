"""
Event existence checks and transactional persistence.

NOTE:
This package __init__ stays lightweight; import submodules directly.
"""

__all__: list[str] = []
