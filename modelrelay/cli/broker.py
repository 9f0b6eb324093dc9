"""CLI for running the broker."""

import asyncio
import signal
import sys

import click
from rich.console import Console

from modelrelay.config import settings
from modelrelay.logger import configure_logging
from ..broker.api.server import APIServer
from ..broker.core.broker import Broker
from ..broker.server.server import BrokerServer

console = Console()


@click.command()
@click.option('--host', default=None, help='Bind address (BROKER_HOST)')
@click.option('--port', type=int, default=None, help='WebSocket port (BROKER_PORT)')
@click.option('--api-port', type=int, default=None, help='Status API port (BROKER_API_PORT)')
@click.option('--request-timeout', type=float, default=None, help='Seconds to wait for a worker reply')
@click.option('--idle-timeout', type=float, default=None, help='Seconds of inactivity before a connection is closed')
@click.option('--log-level', default=None, help='Log level (LOG_LEVEL)')
def broker(host, port, api_port, request_timeout, idle_timeout, log_level):
    """Run the WebSocket broker and its status API."""
    configure_logging(log_level or settings.log_level)

    overrides = {
        'host': host,
        'port': port,
        'api_port': api_port,
        'request_timeout': request_timeout,
        'idle_timeout': idle_timeout,
    }
    broker_settings = settings.broker.model_copy(
        update={key: value for key, value in overrides.items() if value is not None}
    )

    async def _run_broker():
        relay = Broker(broker_settings)
        ws_server = BrokerServer(relay)
        api_server = APIServer(relay)

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
            await relay.start()
            await ws_server.start()

            console.print("🚀 ModelRelay broker started", style="green")
            console.print(f"   Client endpoint: ws://{broker_settings.host}:{broker_settings.port}/")
            console.print(f"   Worker endpoint: ws://{broker_settings.host}:{broker_settings.port}{broker_settings.worker_path}")
            console.print(f"   Status API: http://{broker_settings.host}:{broker_settings.api_port}/status")
            console.print(f"   Request timeout: {broker_settings.request_timeout:g}s")
            console.print("   Press Ctrl+C to stop")

            api_task = asyncio.create_task(api_server.start(broker_settings.host, broker_settings.api_port))
            shutdown_task = asyncio.create_task(shutdown_event.wait())

            # Wait for either the API server to finish or shutdown signal
            done, pending = await asyncio.wait(
                [api_task, shutdown_task],
                return_when=asyncio.FIRST_COMPLETED
            )

            for task in pending:
                if task is api_task:
                    await api_server.stop()
                    await asyncio.gather(task, return_exceptions=True)
                else:
                    task.cancel()
                    try:
                        await task
                    except asyncio.CancelledError:
                        pass

        except Exception as e:
            console.print(f"❌ Error running broker: {e}", style="red")
            raise
        finally:
            console.print("🛑 Shutting down broker...", style="yellow")
            await ws_server.stop()
            await relay.stop()
            console.print("✅ Broker stopped", style="green")

    try:
        asyncio.run(_run_broker())
    except KeyboardInterrupt:
        pass
    except Exception as e:
        console.print(f"❌ Fatal error: {e}", style="red")
        sys.exit(1)


if __name__ == '__main__':
    broker()
