"""Graph-context engine: process lifecycle, JSON-RPC channel and indexing."""

from graphfill.engine.client import EngineClient
from graphfill.engine.indexing import IndexingSupervisor, RevisionMap

__all__ = ["EngineClient", "IndexingSupervisor", "RevisionMap"]
