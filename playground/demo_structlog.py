"""Demo: structlog integration.

Run this to see flow_id automatically injected into structlog output.
Note: requires `structlog` to be installed (pip install 'sluice[structlog]').
"""

from __future__ import annotations

import asyncio

import structlog

from sluice import FlowContext, current_flow_id, define_flow, step
from sluice.contrib.structlog import flow_processor

structlog.configure(
    processors=[
        flow_processor,
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.BoundLogger,
    logger_factory=structlog.PrintLoggerFactory(),
)

log = structlog.get_logger()


@step
def process(order_id: str) -> str:
    log.info("processing data", order_id=order_id)
    log.warning("something iffy", detail="check this")
    return order_id.upper()


async def start(ctx: FlowContext, order_id: str) -> str:
    log.info("flow started", cid=current_flow_id())
    return await process(order_id)


demo = define_flow("structlog_demo", start)


if __name__ == "__main__":
    # Outside a flow: no flow_id injected.
    log.info("before flow")

    # Inside a flow: flow_id is injected automatically.
    asyncio.run(demo.run("order-42"))

    # Outside again.
    log.info("after flow")
