"""Framework exports for room games, the document store, agents, and runners."""

from .game import Game, PlayerId
from .move import Move
from .observation import Observation
from .player import Agent
from .result import DRAW, GameResult, TerminationReason
from .runner import MatchRun, MatchRunner, RunnerConfig
from .state import State
from .store import DocumentStore, InMemoryDocumentStore, TransactionResult

__all__ = [
    "Agent",
    "DRAW",
    "DocumentStore",
    "Game",
    "GameResult",
    "InMemoryDocumentStore",
    "MatchRun",
    "MatchRunner",
    "Move",
    "Observation",
    "PlayerId",
    "RunnerConfig",
    "State",
    "TerminationReason",
    "TransactionResult",
]
