from .edges import EdgeStore
from .indices import IndexMaintainer
from .knowledge import KnowledgeGraph
from .nodes import NodeStore
from .pruning import Pruner
from .query import QueryEngine, QueryOptions, QueryResult
from .ranking import rank, relevance_score

__all__ = [
    "EdgeStore",
    "IndexMaintainer",
    "KnowledgeGraph",
    "NodeStore",
    "Pruner",
    "QueryEngine",
    "QueryOptions",
    "QueryResult",
    "rank",
    "relevance_score",
]
