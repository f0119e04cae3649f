import argparse
import asyncio
from datetime import date
import logging
import time
from typing import List, Optional

from pulsewatch.delivery.base import DeliveryChannel
from pulsewatch.delivery.file_delivery import FileDelivery
from pulsewatch.ingestion.jsonl import JsonlItemSource
from pulsewatch.rules.registry import build_rules
from pulsewatch.services.baselines import SqliteBaselineProvider, SqlitePostingStatsProvider
from pulsewatch.services.config import load_config
from pulsewatch.services.database import Database
from pulsewatch.services.llm import OllamaClient
from pulsewatch.services.logging import setup_logging
from pulsewatch.services.observations import SqliteObservationStore
from pulsewatch.workflows.dispatcher import RuleDispatcher
from pulsewatch.workflows.pipeline import PulsePipeline


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="pulsewatch",
        description="Evaluate summarized content items and surface competitive-intelligence alerts.",
    )
    parser.add_argument("--items", required=True, help="JSON Lines file with one item per line")
    parser.add_argument("--config", default=None, help="Path to config.yml (default: resources/config.yml)")
    parser.add_argument("--output", default=None, help="Output directory (default: OUTPUT_DIR from config)")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    start_time = time.perf_counter()
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    logger = logging.getLogger(__name__)

    config = load_config(args.config)
    today = date.today().isoformat()

    logger.info("Starting pulse run")

    # ----------------------------
    # Initialize shared services
    # ----------------------------
    llm = OllamaClient(
        base_url=config.OLLAMA_BASE_URL,
        model=config.OLLAMA_MODEL,
        max_retries=config.LLM_MAX_RETRIES,
        timeout=config.LLM_TIMEOUT_SECONDS,
    )
    if not await llm.health_check():
        logger.warning("Ollama is not reachable; LLM-assisted rules will produce no alerts")

    db = Database(config.DATABASE_PATH)
    await db.init_tables()

    rules = build_rules(
        config=config,
        llm=llm,
        store=SqliteObservationStore(db),
        baselines=SqliteBaselineProvider(db),
        posting_stats=SqlitePostingStatsProvider(db),
    )
    dispatcher = RuleDispatcher(rules, max_concurrency=config.MAX_CONCURRENCY, clock=config.dedup.clock)
    pipeline = PulsePipeline(dispatcher, database=db, weights=config.rules.engagement_spike.weights)

    # ----------------------------
    # Execute
    # ----------------------------
    items = await JsonlItemSource(args.items).fetch_items()
    alerts = await pipeline.run(items)

    deliveries = list[DeliveryChannel]([FileDelivery(args.output or config.OUTPUT_DIR)])
    for delivery in deliveries:
        try:
            await delivery.deliver(run_date=today, alerts=alerts)
            logger.info(f"Delivered {len(alerts)} alerts via {delivery.name}")
        except Exception as e:
            logger.error(f"Delivery failed: channel={delivery.name}, error={e}")

    logger.info("Pulse run completed")
    end_time = time.perf_counter()
    logger.info(f"Total time: {end_time - start_time}")
    return 0


def cli() -> None:
    raise SystemExit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
