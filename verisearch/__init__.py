"""
VeriSearch — Verification-Guided Search & Consensus
====================================================

VeriSearch turns a single query into a reliable answer: it samples many
candidate solutions, scores them with pluggable verifiers, explores the
solution space under verifier guidance, votes on a consensus answer, and
finally decides whether the answer should be surfaced, qualified, or
withheld.

Architecture Overview:
    Query → Adaptive Sampler → Search Controller → Verify → Vote → Decide

Modules:
    - generation: Generation boundary (Generator ABC) + OpenAI backend
    - verify:     Verifier strategies (deterministic, LLM-judge, tool-based)
    - consensus:  Majority vote and related aggregators
    - search:     Diverse decoding, beam search, MCTS over a node arena
    - sampling:   Adaptive self-consistency + difficulty estimation
    - decide:     Calibration gate, selective generation, uncertainty
    - pipeline:   End-to-end orchestrator (run_search / decide)
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
