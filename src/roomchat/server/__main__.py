"""Run the chat server: ``python -m roomchat.server``."""

from __future__ import annotations

import logging
import os

import uvicorn
from dotenv import load_dotenv

from roomchat.config import ChatConfig
from roomchat.server.app import create_app


def main() -> None:
    load_dotenv()
    logging.basicConfig(
        level=os.environ.get("ROOMCHAT_LOG_LEVEL", "INFO"),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_app(config=ChatConfig.from_env())
    uvicorn.run(
        app,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "5000")),
        log_level="info",
    )


if __name__ == "__main__":
    main()
