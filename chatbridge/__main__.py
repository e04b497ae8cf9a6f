"""CLI entry point for ChatBridge."""

import argparse
import asyncio


def main():
    parser = argparse.ArgumentParser(description="ChatBridge chat backend")
    parser.add_argument("--config", default=None, help="Path to config file")
    parser.add_argument("--host", default=None, help="Override web.host")
    parser.add_argument("--port", type=int, default=None, help="Override web.port")
    args = parser.parse_args()

    from chatbridge.app import ChatBridge
    from chatbridge.config import load_config

    config = load_config(args.config)
    if args.host:
        config.web.host = args.host
    if args.port:
        config.web.port = args.port
    app = ChatBridge(config=config)
    asyncio.run(app.run())


if __name__ == "__main__":
    main()
