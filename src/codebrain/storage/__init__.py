from .cache import BrainStorage
from .debounce import Debouncer

__all__ = ["BrainStorage", "Debouncer"]
