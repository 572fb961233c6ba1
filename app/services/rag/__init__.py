from app.services.rag.context_selector import ContextSelector, PolicyLanguageScorer, ScoringStrategy
from app.services.rag.knowledge_sync import RemoteKnowledgeSync

__all__ = [
    "ContextSelector",
    "PolicyLanguageScorer",
    "ScoringStrategy",
    "RemoteKnowledgeSync",
]
