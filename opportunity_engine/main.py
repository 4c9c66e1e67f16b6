"""Entry point for the opportunity discovery pipeline.

Usage:
    python -m opportunity_engine.main --user u1 --register-user --skills writing,editing
    python -m opportunity_engine.main --user u1 --time "part-time" --risk low --income 1500
    python -m opportunity_engine.main --source upwork --skills design --limit 5
    python -m opportunity_engine.main --lookup upwork-logo_design-1700000000000-a1b2c3
    python -m opportunity_engine.main --list-sources
    python -m opportunity_engine.main --dry-run          # validate config only
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from opportunity_engine.config import load_config
from opportunity_engine.discovery import DiscoveryOrchestrator
from opportunity_engine.errors import EngineError, UserNotFoundError
from opportunity_engine.models import DiscoveryPreferences, UserProfile


def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the pipeline."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def _skill_list(value: str | None) -> list[str]:
    return [s.strip() for s in (value or "").split(",") if s.strip()]


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Opportunity Discovery Pipeline: find and rank income "
        "opportunities that fit a user's skills, time and goals."
    )
    parser.add_argument("--config", type=str, default=None,
                        help="Path to config.yaml (default: config.yaml in project root)")
    parser.add_argument("--data-dir", type=str, default=None,
                        help="Override data directory for users, results and logs (default: from config)")
    parser.add_argument("--user", type=str, default=None, help="User id to run discovery for")
    parser.add_argument("--skills", type=str, default=None, help="Comma-separated skills")
    parser.add_argument("--time", type=str, default="any",
                        help="Time availability, e.g. 'part-time', 'evenings', '15' (default: any)")
    parser.add_argument("--risk", type=str, default="any", choices=["low", "medium", "high", "any"],
                        help="Risk appetite (default: any)")
    parser.add_argument("--income", type=float, default=0, help="Monthly income goal (default: unset)")
    parser.add_argument("--work", type=str, default="any", choices=["remote", "local", "both", "any"],
                        help="Work preference (default: any)")
    parser.add_argument("--ml", action="store_true", help="Use the feature-vector scoring strategy")
    parser.add_argument("--enhanced", action="store_true", help="Use AI generation and re-ranking")
    parser.add_argument("--no-skill-gap", action="store_true", help="Skip skill gap analysis")
    parser.add_argument("--roi", action="store_true", help="Blend ROI into the feature-vector score")
    parser.add_argument("--discoverable", action="store_true", help="Include similar users in the results")
    parser.add_argument("--register-user", action="store_true",
                        help="Create or update the user from --user/--skills before discovering")
    parser.add_argument("--source", type=str, default=None, help="Query a single source by id")
    parser.add_argument("--limit", type=int, default=10, help="Result limit for --source (default: 10)")
    parser.add_argument("--lookup", type=str, default=None, help="Look up one opportunity by id")
    parser.add_argument("--list-sources", action="store_true", help="List registered sources and exit")
    parser.add_argument("--dry-run", action="store_true",
                        help="Load config and list sources without querying anything")
    parser.add_argument("--output", type=str, default=None, help="Write the JSON result to this file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug-level logging")
    return parser.parse_args(argv)


def _emit(data, output: str | None, logger: logging.Logger) -> None:
    text = json.dumps(data, indent=2, ensure_ascii=False, default=str)
    if output:
        out_path = Path(output)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(text + "\n")
        logger.info("Results saved to %s", out_path)
    else:
        print(text)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    config = load_config(args.config)
    if args.data_dir:
        config.data_dir = args.data_dir
    setup_logging("DEBUG" if args.verbose else config.log_level)

    logger = logging.getLogger(__name__)
    logger.info("Loaded config with %d sources", len(config.sources))

    if args.dry_run:
        logger.info("=== Dry Run ===")
        for src in config.sources:
            logger.info(
                "  [%s] %s (type=%s, url=%s)",
                "ON" if src.enabled else "OFF",
                src.name,
                src.source_type,
                src.url or "catalog only",
            )
        logger.info("Dry run complete, nothing queried.")
        return 0

    orchestrator = DiscoveryOrchestrator.from_config(config)
    orchestrator.start()
    try:
        if args.list_sources:
            for source in orchestrator.get_all_sources():
                print(f"{source.id}\t{source.name}")
            return 0

        if args.lookup:
            opportunity = orchestrator.get_opportunity_by_id(args.lookup)
            if opportunity is None:
                logger.error("No opportunity found for id '%s'", args.lookup)
                return 1
            _emit(opportunity.to_dict(), args.output, logger)
            return 0

        skills = _skill_list(args.skills)

        if args.source:
            opportunities = orchestrator.get_opportunities_from_source(args.source, args.limit, skills)
            _emit([o.to_dict() for o in opportunities], args.output, logger)
            return 0

        if not args.user:
            logger.error("--user is required for discovery")
            return 2

        if args.register_user:
            orchestrator.store.upsert_user(UserProfile(
                user_id=args.user,
                username=args.user,
                skills=skills,
                discoverable=args.discoverable,
            ))

        preferences = DiscoveryPreferences(
            user_id=args.user,
            skills=tuple(skills),
            time_availability=args.time,
            risk_appetite=args.risk,
            income_goal=args.income,
            work_preference=args.work,
            use_ml=args.ml,
            use_enhanced=args.enhanced,
            use_skill_gap_analysis=not args.no_skill_gap,
            include_roi=args.roi,
            discoverable=args.discoverable,
        )
        try:
            results = orchestrator.discover(args.user, preferences)
        except UserNotFoundError as exc:
            logger.error("%s (create it with --register-user)", exc)
            return 1

        if not results.opportunities:
            logger.warning("No opportunities matched. Try loosening the preferences.")
        _emit(results.to_dict(), args.output, logger)
        logger.info("Done! %d opportunities in %dms", len(results.opportunities), results.processing_time_ms)
        return 0
    except EngineError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        orchestrator.shutdown()


if __name__ == "__main__":
    sys.exit(main())
