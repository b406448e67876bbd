"""
Deterministic ledger programs.

Each module defines a ``PROGRAM`` whose ABI methods the ledger runtime
dispatches to. ``REGISTRY`` maps the program name used at app creation to
the program object.
"""

from . import identity_registry, milestone_treasury, scheme_factory
from .runtime import Program, Reject, require

REGISTRY = {
    p.name: p
    for p in (scheme_factory.PROGRAM, milestone_treasury.PROGRAM, identity_registry.PROGRAM)
}

__all__ = ["REGISTRY", "Program", "Reject", "require"]
