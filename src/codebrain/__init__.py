"""
codebrain - a versioned knowledge graph of what a codebase has taught you.

Learns patterns, corrections and conventions from developer activity, keeps
them in a per-project graph with git-like history, and renders the most
relevant of them into a token-budgeted block for LLM prompts.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .brain import Brain
from .config import BrainConfig, load_config
from .event_bus import EventBus, WebhookDispatcher
from .export_import import BrainExporter, BrainImporter
from .graph import QueryOptions, QueryResult
from .learners import LearnEvent, Learner
from .models import Delta, Edge, Node
from .types import EdgeType, NodeType, Source

__all__ = [
    "Brain",
    "BrainConfig",
    "load_config",
    "EventBus",
    "WebhookDispatcher",
    "BrainExporter",
    "BrainImporter",
    "QueryOptions",
    "QueryResult",
    "LearnEvent",
    "Learner",
    "Delta",
    "Edge",
    "Node",
    "EdgeType",
    "NodeType",
    "Source",
]
