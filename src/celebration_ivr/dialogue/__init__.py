"""
Call dialogue: sessions, steps, the prompt engine, sub-flows and the
orchestrator that runs them.

NOTE:
This package __init__ stays lightweight; import submodules directly.
"""

__all__: list[str] = []
