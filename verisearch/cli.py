"""
VeriSearch CLI
===============

Command-line interface for running the search engine, the decision
layer on its own, and utility commands.

Usage:
    verisearch search "What is 17 * 23?" --controller diverse --ground-truth 391
    verisearch search "Explain why ..." --controller mcts --difficulty auto
    verisearch decide "Who will win the next election?" --confidence 0.9
    verisearch export-schemas --output-dir schemas
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from pathlib import Path

from verisearch.config import get_config
from verisearch.utils import save_json, set_all_seeds, setup_logging


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="verisearch",
        description="VeriSearch: verification-guided search and consensus",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to config YAML")
    parser.add_argument("--seed", type=int, default=None, help="Override the global seed")
    parser.add_argument("--verbose", "-v", action="store_true")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # ── search ──────────────────────────────────────────────────
    search_parser = subparsers.add_parser("search", help="Search for a verified answer")
    search_parser.add_argument("query", help="Question to answer")
    search_parser.add_argument("--controller", choices=["diverse", "beam", "mcts"], default=None)
    search_parser.add_argument(
        "--difficulty", choices=["easy", "medium", "hard", "auto"], default=None,
        help="Difficulty level ('auto' estimates it from the query)",
    )
    search_parser.add_argument("--ground-truth", type=str, default=None)
    search_parser.add_argument("--domain", choices=["general", "safety_critical"], default=None)
    search_parser.add_argument("--output", type=str, default=None, help="Output JSON path")

    # ── decide ──────────────────────────────────────────────────
    decide_parser = subparsers.add_parser("decide", help="Route a confidence through the decision layer")
    decide_parser.add_argument("query", help="Question the confidence belongs to")
    decide_parser.add_argument("--confidence", type=float, required=True)
    decide_parser.add_argument("--answer", type=str, default=None, help="Answer text to route")
    decide_parser.add_argument("--domain", choices=["general", "safety_critical"], default=None)

    # ── export-schemas ──────────────────────────────────────────
    schema_parser = subparsers.add_parser("export-schemas", help="Export JSON schemas")
    schema_parser.add_argument("--output-dir", default="schemas")

    args = parser.parse_args(argv)

    config = get_config(args.config)
    setup_logging(
        level="DEBUG" if args.verbose else config.log_level,
        format_style=config.log_format,
    )
    set_all_seeds(args.seed if args.seed is not None else config.seed)

    if args.command == "search":
        cmd_search(args, config)
    elif args.command == "decide":
        cmd_decide(args, config)
    elif args.command == "export-schemas":
        cmd_export_schemas(args)
    else:
        parser.print_help()
        sys.exit(1)


def cmd_search(args, config):
    """Run the full pipeline on a single query."""
    from verisearch.pipeline import VeriSearchPipeline
    from verisearch.sampling.difficulty import HeuristicDifficultyEstimator
    from verisearch.schemas.sampling import DifficultyLevel

    if args.seed is not None:
        config = config.model_copy(
            update={"generation": config.generation.model_copy(update={"base_seed": args.seed})}
        )
    if not (config.openai_api_key or os.environ.get("OPENAI_API_KEY")):
        print("Error: no API key. Set VERISEARCH_OPENAI_API_KEY or OPENAI_API_KEY.")
        sys.exit(1)

    estimator = None
    difficulty = None
    if args.difficulty == "auto":
        estimator = HeuristicDifficultyEstimator.from_config(config.sampling)
    elif args.difficulty:
        difficulty = DifficultyLevel(args.difficulty)

    pipeline = VeriSearchPipeline(config, difficulty_estimator=estimator)
    result = asyncio.run(
        pipeline.run(
            args.query,
            controller_kind=args.controller,
            ground_truth=args.ground_truth,
            difficulty=difficulty,
            domain=args.domain,
        )
    )

    consensus = result.consensus
    print(f"\nQuery: {args.query}")
    print(f"Controller: {result.controller}")
    print(f"Latency: {result.timings.get('total_ms', 0):.0f}ms\n")
    print(f"  Selected answer: {consensus.selected_answer}")
    print(f"  Agreement: {consensus.agreement_score:.3f} "
          f"({'reached' if consensus.consensus_reached else 'not reached'} at {consensus.threshold})")
    for answer, votes in consensus.vote_distribution.items():
        print(f"    {votes:>3}  {answer}")
    print(f"\n  Decision: {result.decision.action.value} (confidence {result.decision.confidence:.3f})")
    print(f"  {result.decision.reasoning}")
    if result.answer:
        print(f"\n{result.answer}")
    print(f"\n  Stats: {result.stats}")

    if args.output:
        save_json(result.to_dict(), args.output)
        print(f"\n  Results saved to {args.output}")


def cmd_decide(args, config):
    """Run the decision layer on a given confidence."""
    from verisearch.decide.decision import DecisionEngine
    from verisearch.schemas.candidate import Candidate

    candidate = Candidate(id="cli-answer", content=args.answer) if args.answer is not None else None
    engine = DecisionEngine.from_config(config, domain=args.domain)
    decision = engine.decide(args.query, args.confidence, candidate)
    print(json.dumps(decision.model_dump(mode="json"), indent=2, default=str))


def cmd_export_schemas(args):
    """Export JSON schemas for all data contracts."""
    from verisearch.schemas import export_all_schemas

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    schemas = export_all_schemas()
    for name, schema in schemas.items():
        path = output_dir / f"{name}.json"
        with open(path, "w") as f:
            json.dump(schema, f, indent=2)
        print(f"Exported: {path}")

    print(f"\n{len(schemas)} schemas exported to {output_dir}/")


if __name__ == "__main__":
    main()
