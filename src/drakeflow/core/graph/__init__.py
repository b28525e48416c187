"""
Grafo de dependências do drakeflow.

    - graph   → DependencyGraph (nós, arestas, ordenação, ciclos)
    - builder → build_graph(plan, envir)
"""

from .builder import build_graph, import_fingerprint, is_user_function
from .graph import NODE_FILE, NODE_IMPORT, NODE_MISSING, NODE_TARGET, DependencyGraph, Node, file_node

__all__ = [
    "build_graph",
    "import_fingerprint",
    "is_user_function",
    "NODE_FILE",
    "NODE_IMPORT",
    "NODE_MISSING",
    "NODE_TARGET",
    "DependencyGraph",
    "Node",
    "file_node",
]
