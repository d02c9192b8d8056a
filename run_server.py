from __future__ import annotations

import argparse

import uvicorn
from dotenv import load_dotenv

from stream_translate.config import load_config
from stream_translate.server import create_app
from stream_translate.utils import setup_logger


def main() -> None:
    parser = argparse.ArgumentParser(description="Serve the streaming article translator.")
    parser.add_argument("--config", type=str, default="", help="Path to config.json (defaults are used if omitted)")
    parser.add_argument("--host", type=str, default="", help="Override server.host")
    parser.add_argument("--port", type=int, default=0, help="Override server.port")
    args = parser.parse_args()

    load_dotenv()

    cfg = load_config(args.config or None)
    logger = setup_logger(cfg["paths"].get("logs_dir", "logs"))

    host = args.host or cfg["server"].get("host", "127.0.0.1")
    port = args.port or int(cfg["server"].get("port", 8000))
    logger.info("Provider: %s, listening on %s:%s", cfg["translation"].get("provider"), host, port)

    app = create_app(cfg, logger=logger)
    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    main()
