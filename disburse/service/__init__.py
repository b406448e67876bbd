"""
Orchestration layer.

- scheme_service : SchemeService (workflows, uniform results, fail-open reads)
- cache          : TTLCache owned by each service instance
- results        : OperationResult / Progress payloads
"""

from .cache import TTLCache
from .results import OperationResult, Progress
from .scheme_service import SchemeService

__all__ = ["SchemeService", "TTLCache", "OperationResult", "Progress"]
