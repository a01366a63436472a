"""
Health and control server for the deposit monitor.

Provides HTTP endpoints for health checks, monitor status and manual
deposit checks.
"""

import asyncio
from decimal import Decimal

from aiohttp import web
from loguru import logger

from app.services.deposit.monitor import DepositMonitor
from app.utils.exceptions import ChainRpcError, UnknownOwnerError

MONITOR_KEY = web.AppKey("monitor", DepositMonitor)


def _format_amount(value: Decimal) -> str:
    return format(value.normalize(), "f") if value else "0"


async def health_handler(request: web.Request) -> web.Response:
    """
    Health check endpoint.

    Returns:
        JSON response with monitor and scheduler state
    """
    monitor = request.app[MONITOR_KEY]
    try:
        scheduler = monitor.scheduler
        jobs = scheduler.get_jobs() if scheduler.running else []
        job_info = [
            {
                "id": job.id,
                "name": job.name,
                "next_run_time": job.next_run_time.isoformat() if job.next_run_time else None,
            }
            for job in jobs
        ]

        return web.json_response(
            {
                "status": "healthy" if monitor.is_monitoring else "stopped",
                "monitoring": monitor.is_monitoring,
                "jobs_count": len(jobs),
                "jobs": job_info,
            }
        )
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return web.json_response(
            {
                "status": "unhealthy",
                "error": str(e),
            },
            status=503,
        )


async def liveness_handler(request: web.Request) -> web.Response:
    """
    Liveness check endpoint.

    Returns:
        JSON response indicating if the process is alive
    """
    return web.json_response(
        {
            "status": "alive",
            "alive": True,
        }
    )


async def status_handler(request: web.Request) -> web.Response:
    """
    Monitor status endpoint.

    Returns:
        JSON with monitoring, address_count, last_scanned_block, current_block
    """
    monitor = request.app[MONITOR_KEY]
    return web.json_response(await monitor.status())


async def check_deposit_handler(request: web.Request) -> web.Response:
    """
    Manual deposit check for one owner.

    Returns:
        JSON check result; 404 for an unknown owner, 503 when the chain
        is unreachable
    """
    monitor = request.app[MONITOR_KEY]
    owner_id = request.match_info["owner_id"]

    try:
        result = await monitor.check_deposit(owner_id)
    except UnknownOwnerError as e:
        return web.json_response({"error": str(e)}, status=404)
    except ChainRpcError as e:
        logger.warning(f"Manual check for {owner_id} failed: {e}")
        return web.json_response({"error": "chain unavailable"}, status=503)

    result["token_balance"] = _format_amount(result["token_balance"])
    return web.json_response(result)


async def start_monitor_handler(request: web.Request) -> web.Response:
    """Start the deposit monitor."""
    monitor = request.app[MONITOR_KEY]
    try:
        await monitor.start()
    except ChainRpcError as e:
        logger.warning(f"Monitor start failed: {e}")
        return web.json_response({"error": "chain unavailable"}, status=503)
    return web.json_response(await monitor.status())


async def stop_monitor_handler(request: web.Request) -> web.Response:
    """Stop scheduling new monitor jobs."""
    monitor = request.app[MONITOR_KEY]
    await monitor.stop()
    return web.json_response(await monitor.status())


def create_app(monitor: DepositMonitor) -> web.Application:
    """Build the aiohttp application around a monitor."""
    app = web.Application()
    app[MONITOR_KEY] = monitor
    app.router.add_get("/health", health_handler)
    app.router.add_get("/liveness", liveness_handler)
    app.router.add_get("/status", status_handler)
    app.router.add_post("/deposits/{owner_id}/check", check_deposit_handler)
    app.router.add_post("/monitor/start", start_monitor_handler)
    app.router.add_post("/monitor/stop", stop_monitor_handler)
    return app


async def start_health_server(
    monitor: DepositMonitor,
    host: str = "0.0.0.0",
    port: int = 8081,
) -> web.AppRunner:
    """
    Start health check server.

    Args:
        monitor: Deposit monitor served by the endpoints
        host: Host to bind to
        port: Port to bind to

    Returns:
        AppRunner for cleanup
    """
    runner = web.AppRunner(create_app(monitor))
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()

    logger.info(f"Health check server started on {host}:{port}")
    logger.info(f"  - Health: http://{host}:{port}/health")
    logger.info(f"  - Status: http://{host}:{port}/status")
    logger.info(f"  - Manual check: POST http://{host}:{port}/deposits/<owner_id>/check")

    return runner


async def stop_health_server(
    runner: web.AppRunner,
    timeout: int = 5,
) -> None:
    """
    Stop health check server gracefully.

    Args:
        runner: AppRunner to cleanup
        timeout: Maximum time to wait for cleanup in seconds
    """
    logger.info("Stopping health check server...")
    try:
        await asyncio.wait_for(runner.cleanup(), timeout=timeout)
        logger.info("Health check server stopped successfully")
    except TimeoutError:
        logger.warning(f"Health check server cleanup timed out after {timeout}s")
    except Exception as e:
        logger.error(f"Error stopping health check server: {e}")
