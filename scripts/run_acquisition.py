"""
Run one acquisition session from the CLI.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import asdict

from app.domain.intelligence import AcquisitionResult
from app.scraping.config import BackendId, Depth, ScrapePreset
from app.services.intelligence_service import IntelligenceService


async def _run(service: IntelligenceService, user_id: str, domain: str, preset: ScrapePreset) -> AcquisitionResult:
    try:
        return await service.orchestrator.run(user_id, domain, preset)
    finally:
        await service.orchestrator.close()


def main() -> int:
    parser = argparse.ArgumentParser(description="Acquire pages for one domain.")
    parser.add_argument("--domain", required=True, help="Domain or URL, e.g. example.com")
    parser.add_argument("--user-id", dest="user_id", required=True, help="User the credits are billed to.")
    parser.add_argument(
        "--backend",
        choices=[backend.value for backend in BackendId],
        default=BackendId.STATIC.value,
        help="Backend used for the rapid extraction pass.",
    )
    parser.add_argument(
        "--depth",
        choices=[depth.value for depth in Depth],
        default=Depth.STANDARD.value,
        help="Page limit: quick=10, standard=25, deep=50.",
    )
    parser.add_argument("--premium", action="store_true", help="Apply the premium multiplier.")
    parser.add_argument("--extract-schema", dest="extract_schema", action="store_true")
    parser.add_argument("--log-level", dest="log_level", default="INFO")
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    preset = ScrapePreset.from_mapping(
        {
            "backend": args.backend,
            "depth": args.depth,
            "premium": args.premium,
            "extract_schema": args.extract_schema,
        }
    )
    result = asyncio.run(_run(IntelligenceService(), args.user_id, args.domain, preset))

    print(json.dumps(asdict(result), indent=2, default=str))
    return 0 if result.success else 1


if __name__ == "__main__":
    raise SystemExit(main())
