# main.py
"""
Command line entry point for the Newswire pipeline.

  python main.py run --sources bbc.co.uk cnn.com --articles 3
  python main.py cleanup --policy aggressive
  python main.py serve
  python main.py sources [--import config/sources.yaml]
  python main.py jobs [--status failed] [--job <id> --logs]
"""
import argparse
import asyncio
import json
import sys

from loguru import logger

from crawler.core.pipeline_runtime import PipelineRuntime
from crawler.interfaces.news_source_interface import ValidationError
from monitoring.lifecycle import CLEANUP_POLICIES, get_policy
from utils.config.settings import Settings, get_settings


def configure_logging(settings: Settings) -> None:
    """Console sink at LOG_LEVEL plus an optional rotating LOG_FILE sink."""
    logger.remove()
    logger.add(sys.stderr, level=settings.log_level)
    if settings.log_file:
        logger.add(settings.log_file, level=settings.log_level, rotation="10 MB", retention="14 days")


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


async def run_job(runtime: PipelineRuntime, sources, articles) -> int:
    await runtime.start(background_tasks=False)
    try:
        if not sources:
            sources = [s['id'] for s in await runtime.registry.list_sources(active_only=True)]
            logger.info(f"🎯 No sources given, using all {len(sources)} active sources")
        try:
            job = await runtime.orchestrator.run_job(sources, articles)
        except ValidationError as e:
            logger.error(f"❌ Job rejected: {e}")
            return 2

        logger.info("=" * 60)
        logger.info("📊 JOB SUMMARY")
        logger.info("=" * 60)
        logger.info(f"   🆔 Job: {job['id']}")
        logger.info(f"   🏁 Status: {job['status']}")
        logger.info(f"   ✅ Articles stored: {job['total_articles_scraped']}")
        logger.info(f"   ❌ Errors: {job['total_errors']}")
        _print_json(job)
        return 0 if job['status'] == 'successful' else 1
    finally:
        await runtime.stop()


async def run_cleanup(runtime: PipelineRuntime, policy_name) -> int:
    await runtime.start(background_tasks=False)
    try:
        policy = get_policy(policy_name) if policy_name else None
        result = await runtime.cleanup.run_cleanup(reason="cli", policy=policy)
        _print_json(result)
        return 0 if result['status'] != 'failed' else 1
    finally:
        await runtime.stop()


async def manage_sources(runtime: PipelineRuntime, import_path) -> int:
    await runtime.start(background_tasks=False)
    try:
        if import_path:
            _print_json(await runtime.registry.import_sources(import_path))
        for source in await runtime.registry.list_sources():
            state = "active" if source['is_active'] else "inactive"
            logger.info(f"  📡 {source['name']} ({source['domain']}) [{state}] "
                        f"delay {source['delay_ms']}ms, timeout {source['timeout_ms']}ms")
        return 0
    finally:
        await runtime.stop()


async def show_jobs(runtime: PipelineRuntime, status, job_id, logs) -> int:
    await runtime.start(background_tasks=False)
    try:
        if job_id:
            job = await runtime.store.get_job(job_id)
            if job is None:
                logger.error(f"❌ Job {job_id} not found")
                return 1
            _print_json(job)
            if logs:
                _print_json(await runtime.store.get_job_logs(job_id, page_size=200))
        else:
            _print_json(await runtime.store.list_jobs(status=status))
        return 0
    finally:
        await runtime.stop()


def serve(runtime: PipelineRuntime, settings: Settings) -> int:
    from scraper_api import create_app

    runtime.start_background_loop()
    app = create_app(runtime)
    logger.info(f"🌐 Starting API on {settings.api_host}:{settings.api_port}")
    try:
        app.run(host=settings.api_host, port=settings.api_port, threaded=True, use_reloader=False)
    finally:
        runtime.stop_background_loop()
        runtime.store.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Newswire news ingestion pipeline")
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Run one ingestion job and wait for it")
    run_parser.add_argument("--sources", nargs="*", default=[], help="Source ids, domains or names")
    run_parser.add_argument("--articles", type=int, default=None, help="Articles per source")

    cleanup_parser = subparsers.add_parser("cleanup", help="Archive aged or excess content")
    cleanup_parser.add_argument("--policy", choices=sorted(CLEANUP_POLICIES), default=None)

    subparsers.add_parser("serve", help="Start the HTTP API")

    sources_parser = subparsers.add_parser("sources", help="List (and optionally import) sources")
    sources_parser.add_argument("--import", dest="import_path", default=None, help="YAML file to import")

    jobs_parser = subparsers.add_parser("jobs", help="Inspect jobs")
    jobs_parser.add_argument("--status", default=None)
    jobs_parser.add_argument("--job", dest="job_id", default=None)
    jobs_parser.add_argument("--logs", action="store_true", help="Include the job's log entries")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(settings)
    runtime = PipelineRuntime(settings)

    if args.command == "serve":
        return serve(runtime, settings)

    try:
        if args.command == "run":
            return asyncio.run(run_job(runtime, args.sources, args.articles))
        if args.command == "cleanup":
            return asyncio.run(run_cleanup(runtime, args.policy))
        if args.command == "sources":
            return asyncio.run(manage_sources(runtime, args.import_path))
        return asyncio.run(show_jobs(runtime, args.status, args.job_id, args.logs))
    except KeyboardInterrupt:
        logger.info("⚠️ Received interrupt signal. Shutting down...")
        return 130
    finally:
        runtime.store.close()


if __name__ == "__main__":
    sys.exit(main())
