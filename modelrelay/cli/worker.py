"""CLI for running a worker agent."""

import asyncio
import signal
import sys

import aiohttp
import click
from rich.console import Console

from modelrelay.config import settings
from modelrelay.exceptions import WorkerAgentFatal
from modelrelay.logger import configure_logging, logger
from ..worker.agent import WorkerAgent
from ..worker.api.server import WorkerAPIServer
from ..worker.generation import OllamaGenerator

console = Console()


@click.command()
@click.option('--broker-url', default=None, help='Broker WebSocket URL (BROKER_URL)')
@click.option('--worker-id', default=None, help='Stable worker identifier (WORKER_ID)')
@click.option('--ollama-url', default=None, help='Ollama API URL (OLLAMA_URL)')
@click.option('--default-model', default=None, help='Local fallback model (DEFAULT_MODEL)')
@click.option('--api-port', type=int, default=None, help='Health and status API port (WORKER_API_PORT)')
@click.option('--no-api', is_flag=True, help='Do not serve the health and status API')
@click.option('--log-level', default=None, help='Log level (LOG_LEVEL)')
def worker(broker_url, worker_id, ollama_url, default_model, api_port, no_api, log_level):
    """Run a worker agent serving requests from the broker."""
    configure_logging(log_level or settings.log_level)

    overrides = {
        'broker_url': broker_url,
        'worker_id': worker_id,
        'ollama_url': ollama_url,
        'default_model': default_model,
        'api_port': api_port,
    }
    worker_settings = settings.worker.model_copy(
        update={key: value for key, value in overrides.items() if value is not None}
    )

    async def _run_worker():
        generator = OllamaGenerator(worker_settings.ollama_url, timeout=worker_settings.generation_timeout)
        agent = WorkerAgent(worker_settings, generator)
        api_server = WorkerAPIServer(agent)

        # Setup signal handling for graceful shutdown
        shutdown_event = asyncio.Event()

        def signal_handler():
            console.print("\n🛑 Received shutdown signal...", style="yellow")
            shutdown_event.set()

        if sys.platform != 'win32':
            loop = asyncio.get_running_loop()
            loop.add_signal_handler(signal.SIGINT, signal_handler)
            loop.add_signal_handler(signal.SIGTERM, signal_handler)

        try:
            installed = await generator.list_models()
            logger.info(f"Installed Ollama models: {', '.join(installed) or 'none'}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.warning(f"Ollama is not reachable at {worker_settings.ollama_url}: {e}")

        console.print("🚀 ModelRelay worker started", style="green")
        console.print(f"   Worker ID: {worker_settings.worker_id}")
        console.print(f"   Broker: {worker_settings.endpoint}")
        console.print(f"   Ollama: {worker_settings.ollama_url}")
        console.print(f"   Models: {', '.join(worker_settings.capabilities)}")
        if not no_api:
            console.print(f"   Status API: http://{worker_settings.api_host}:{worker_settings.api_port}/status")
        console.print("   Press Ctrl+C to stop")

        agent_task = asyncio.create_task(agent.run())
        shutdown_task = asyncio.create_task(shutdown_event.wait())
        api_task = None
        tasks = [agent_task, shutdown_task]
        if not no_api:
            api_task = asyncio.create_task(api_server.start(worker_settings.api_host, worker_settings.api_port))
            tasks.append(api_task)

        try:
            # Shut down as soon as any of them finishes
            await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            await agent.stop()
            shutdown_task.cancel()
            if api_task is not None:
                await api_server.stop()
                await asyncio.gather(api_task, return_exceptions=True)
            await asyncio.gather(shutdown_task, return_exceptions=True)
            console.print("✅ Worker stopped", style="green")

        # Surfaces WorkerAgentFatal when reconnecting was exhausted
        await agent_task

    try:
        asyncio.run(_run_worker())
    except KeyboardInterrupt:
        pass
    except WorkerAgentFatal as e:
        console.print(f"❌ {e.message}: {e.detail}", style="red")
        sys.exit(1)
    except Exception as e:
        console.print(f"❌ Fatal error: {e}", style="red")
        sys.exit(1)


if __name__ == '__main__':
    worker()
