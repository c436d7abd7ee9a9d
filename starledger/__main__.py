"""
starledger.__main__ — Run the API with uvicorn
===============================================

Usage::

    python -m starledger            # serves on 0.0.0.0:8000
    python -m starledger --init-db  # create tables + seed reward rules first
"""

from __future__ import annotations

import argparse
import logging
import os

import uvicorn
from dotenv import load_dotenv

from starledger.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("starledger")


def main() -> None:
    """Bootstrap and serve the StarLedger API."""
    load_dotenv()

    parser = argparse.ArgumentParser(prog="starledger")
    parser.add_argument("--init-db", action="store_true", help="create tables and seed rules")
    parser.add_argument("--host", default=os.getenv("HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8000")))
    args = parser.parse_args()

    if args.init_db:
        init_db(create_db_engine())
        logger.info("Schema ready.")

    uvicorn.run("starledger.api.main:app", host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
