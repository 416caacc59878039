# === NAVMAP v1 ===
# {
#   "module": "RequestKit.concurrency.__init__",
#   "purpose": "Concurrency helpers shared across RequestKit components.",
#   "sections": []
# }
# === /NAVMAP ===

"""
Concurrency helpers shared across RequestKit components.

Currently exposes :func:`create_executor` (thread pools for IO-bound work) and
:func:`completed_future` for work that runs inline when no pool is configured.
"""

from .executors import completed_future, create_executor

__all__ = ["create_executor", "completed_future"]
