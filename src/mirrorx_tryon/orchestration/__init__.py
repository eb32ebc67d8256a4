"""
Generation strategies, the provider fallback chain and the try-on orchestrator.
"""
from .fallback import Candidate, ChainResult, ChainState, FallbackChain
from .orchestrator import TryOnOrchestrator
from .strategies import FallbackChainStrategy, GenerationStrategy, StrategyResult, TwoStepStrategy

__all__ = [
    "Candidate",
    "ChainResult",
    "ChainState",
    "FallbackChain",
    "FallbackChainStrategy",
    "GenerationStrategy",
    "StrategyResult",
    "TryOnOrchestrator",
    "TwoStepStrategy",
]
