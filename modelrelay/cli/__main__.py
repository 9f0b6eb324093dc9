#!/usr/bin/env python3
"""
ModelRelay CLI

Usage:
    python -m modelrelay.cli [COMMAND] [OPTIONS]

    Or use the installed command:
    modelrelay [COMMAND] [OPTIONS]

Available Commands:
    broker      - Run the WebSocket broker and its status API
    worker      - Run a worker agent next to a local Ollama

Examples:
    # Start a broker on the default ports (3000 websocket, 3001 status API)
    modelrelay broker

    # Connect a worker to a remote broker
    modelrelay worker --broker-url wss://relay.example.com
"""

from .main import cli

if __name__ == '__main__':
    cli()
