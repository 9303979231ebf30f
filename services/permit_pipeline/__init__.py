"""Permit pipeline: classify, match contractors, persist, orchestrate city runs."""
from .classification import ClassificationResult, PermitClassifier
from .contractor_matching import ContractorMatch, ContractorMatcher
from .planner import BatchPlanner
from .repository import PermitRepository, get_connection
from .runner import Orchestrator

__all__ = [
    'BatchPlanner',
    'ClassificationResult',
    'ContractorMatch',
    'ContractorMatcher',
    'Orchestrator',
    'PermitClassifier',
    'PermitRepository',
    'get_connection',
]
