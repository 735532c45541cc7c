"""
Expansion Planner
Main entry point

Runs the inbound API server, or a one-shot candidate generation from the
command line.
"""

import argparse
import asyncio
import json
import sys
from datetime import datetime

from dotenv import load_dotenv

from src.application.workflows.expansion_workflow import ExpansionRequest, RegionFilter
from src.domain.exceptions import ExpansionPlannerError
from src.infrastructure.config.config_manager import AppConfig
from src.infrastructure.container import Container
from src.monitoring.logger import AgentLogger

# Load environment variables
load_dotenv()


async def run_expansion(
    country: str,
    state: str | None = None,
    city: str | None = None,
    aggression: int = 50,
    target_count: int | None = None,
    no_ai: bool = False,
) -> dict:
    """
    Generate expansion candidates once and return the result as a dict

    Args:
        country / state / city: region filter
        aggression: 0-100, used when target_count is not given
        target_count: explicit number of candidates
        no_ai: use the placeholder generator instead of the reasoning service

    Returns:
        result dict with "status"
    """
    logger = AgentLogger("main")
    logger.info("=" * 50)
    logger.info("Expansion Planner")
    logger.info(f"Date: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    logger.info("=" * 50)

    config = AppConfig.from_env()
    if not no_ai and not config.openai_api_key:
        logger.error("OPENAI_API_KEY not found in environment variables")
        return {"status": "failed", "error": "OPENAI_API_KEY not configured"}

    container = Container(config)
    try:
        result = await container.get_expansion_workflow().generate(
            ExpansionRequest(
                region=RegionFilter(country=country, state=state, city=city),
                aggression=aggression,
                target_count=target_count,
                enable_ai_rationale=not no_ai,
            )
        )
        logger.info("=" * 50)
        logger.info("Generation Complete")
        logger.info(f"Mode: {result.mode}")
        logger.info(f"Candidates: {len(result.candidates)}/{result.target_count}")
        logger.info(f"Tokens: {result.tokens_used}, cost: ${result.cost:.4f}")
        return {"status": "completed", **result.to_dict()}

    except KeyboardInterrupt:
        logger.warning("Generation interrupted by user")
        return {"status": "interrupted"}

    except ExpansionPlannerError as e:
        logger.error(f"Generation failed: {e}", exc_info=True)
        return {"status": "failed", "error": str(e)}

    finally:
        await container.aclose()


def run_server(host: str | None = None, port: int | None = None) -> None:
    """Start the FastAPI app under uvicorn"""
    import uvicorn

    from src.api.app_factory import create_app

    config = AppConfig.from_env_validated(fail_fast=False)
    app = create_app(Container(config))
    uvicorn.run(app, host=host or config.host, port=port or config.port)


def check_config() -> int:
    """Print configuration problems; exit code 0 when there are none"""
    config = AppConfig.from_env()
    errors = config.validate()
    print(json.dumps(config.to_dict(), indent=2, default=str))
    if errors:
        print("\nConfiguration problems:")
        for error in errors:
            print(f"  - {error}")
        return 1
    print("\nConfiguration OK")
    return 0


def main():
    """Main function"""
    parser = argparse.ArgumentParser(
        description="Restaurant network expansion planner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start the API server
  python main.py

  # Generate candidates for one country
  python main.py --expand Germany --aggression 40

  # Placeholder candidates without the reasoning service
  python main.py --expand Germany --target-count 10 --no-ai

  # Validate configuration
  python main.py --check-config
        """,
    )

    parser.add_argument("--expand", metavar="COUNTRY", help="Generate candidates for a country")
    parser.add_argument("--state", type=str, help="State filter for --expand")
    parser.add_argument("--city", type=str, help="City filter for --expand")
    parser.add_argument("--aggression", type=int, default=50, help="0-100 (default: 50)")
    parser.add_argument("--target-count", type=int, help="Explicit number of candidates")
    parser.add_argument("--no-ai", action="store_true", help="Use placeholder candidates")
    parser.add_argument("--check-config", action="store_true", help="Validate configuration and exit")
    parser.add_argument("--host", type=str, help="Server host (default: HOST or 0.0.0.0)")
    parser.add_argument("--port", type=int, help="Server port (default: PORT or 8001)")

    args = parser.parse_args()

    if args.check_config:
        sys.exit(check_config())

    if args.expand:
        result = asyncio.run(
            run_expansion(
                country=args.expand,
                state=args.state,
                city=args.city,
                aggression=args.aggression,
                target_count=args.target_count,
                no_ai=args.no_ai,
            )
        )
        print(json.dumps(result, indent=2, ensure_ascii=False))
        sys.exit(0 if result.get("status") == "completed" else 1)

    run_server(args.host, args.port)


if __name__ == "__main__":
    main()
