"""
Search Controllers
===================

- DiverseDecoding: flat, temperature-swept independent sampling
- BeamSearch:      breadth-bounded tree search over reasoning paths
- MCTS:            UCB1-guided Monte-Carlo tree search

All controllers share ``run(context, budget) -> (best, trace)`` and
``propose(context, n)``; ``build_controller`` dispatches by tag.
"""

from verisearch.errors import InvalidConfiguration
from verisearch.search.arena import NodeArena
from verisearch.search.beam import BeamSearch
from verisearch.search.budget import SearchBudget
from verisearch.search.controller import Proposal, SearchController, best_by_utility
from verisearch.search.diverse import DiverseDecoding
from verisearch.search.executor import BatchExecutor
from verisearch.search.mcts import MCTS

CONTROLLERS = {
    DiverseDecoding.kind: DiverseDecoding,
    BeamSearch.kind: BeamSearch,
    MCTS.kind: MCTS,
}


def build_controller(kind: str, config, generator, verifier, step_verifier=None) -> SearchController:
    """Instantiate a search controller by tag from a VeriSearchConfig."""
    try:
        cls = CONTROLLERS[kind]
    except KeyError:
        raise InvalidConfiguration(
            f"Unknown search controller: {kind} (expected one of {sorted(CONTROLLERS)})"
        ) from None
    return cls.from_config(config, generator, verifier, step_verifier=step_verifier)


__all__ = [
    "BatchExecutor",
    "BeamSearch",
    "CONTROLLERS",
    "DiverseDecoding",
    "MCTS",
    "NodeArena",
    "Proposal",
    "SearchBudget",
    "SearchController",
    "best_by_utility",
    "build_controller",
]
