"""
Workflow Kernel

A template-driven, multi-node sequential approval engine with:
- One pending instance per business entity
- Pointer-derived active node (approve / reject / back)
- Atomic transitions with row locking and optimistic versioning
- Append-only action log
- FIFO pending-task inbox per actor
"""

__version__ = "0.1.0"
