from . import diff
from .commit import DeltaManager

__all__ = ["DeltaManager", "diff"]
