#!/usr/bin/env python3
"""
Batched resource lookup example.

Reads every resource group of a subscription through the management-plane
``/batch`` endpoint and prints one line per group.

Usage:
    export AZURE_ACCESS_TOKEN="$(az account get-access-token --query accessToken -o tsv)"
    export AZURE_SUBSCRIPTION_ID="00000000-0000-0000-0000-000000000000"
    python examples/batch_get_resources.py rg-web rg-data rg-ops
"""

import asyncio
import os
import sys

from mgmt_batch import BatchOrchestrator, EnvironmentTokenProvider, RequestUnit
from mgmt_batch.telemetry import LogLevel, MgmtBatchLogger


def resource_group_units(subscription: str, names: list[str]) -> list[RequestUnit]:
    """One GET per resource group, keyed by group name."""
    return [
        RequestUnit.get(
            name,
            f"/subscriptions/{subscription}/resourcegroups/{name}?api-version=2021-04-01",
        )
        for name in names
    ]


async def main() -> None:
    subscription = os.environ["AZURE_SUBSCRIPTION_ID"]
    names = sys.argv[1:] or ["rg-web", "rg-data"]

    MgmtBatchLogger.configure(level=LogLevel.INFO, format="text")

    orchestrator = (
        BatchOrchestrator.builder()
        .token_provider(EnvironmentTokenProvider())
        .max_batch_size(20)
        .concurrency_limit(4)
        .deadline(120)
        .build()
    )

    async with orchestrator:
        result = await orchestrator.submit(resource_group_units(subscription, names))

    for key, outcome in result.outcomes.items():
        if outcome.is_success:
            location = (outcome.content or {}).get("location", "?")
            print(f"{key}: {location}")
        else:
            print(f"{key}: {outcome.kind.value} ({outcome.status_code}) {outcome.cause or ''}")

    stats = result.statistics
    print()
    print(
        f"{stats.succeeded}/{stats.submitted} succeeded in {stats.envelopes_sent} batch calls "
        f"({stats.retries} retries, {stats.elapsed_ms:.0f} ms)"
    )


if __name__ == "__main__":
    asyncio.run(main())
