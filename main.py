"""Romance City — dev launcher. Serves the game API with uvicorn."""

import argparse
import logging
import os
from pathlib import Path

import uvicorn
from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = int(os.getenv("BACKEND_PORT", "13013"))


def main():
    parser = argparse.ArgumentParser(description="Romance City dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Save slot directory (default: ./data)")
    parser.add_argument("--port", type=int, default=BACKEND_PORT)
    parser.add_argument("--reload", action="store_true",
                        help="Restart on code changes")
    parser.add_argument("--log-level", default="info",
                        choices=["debug", "info", "warning", "error"])
    parser.add_argument("--new", action="store_true",
                        help="Delete the existing save before starting")
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # The app reads DATA_DIR when uvicorn imports it
    if args.data_dir:
        os.environ["DATA_DIR"] = str(args.data_dir.resolve())

    if args.new:
        from romance_city.config import load_settings
        from romance_city.storage import SaveStore
        SaveStore(load_settings().data_dir).clear()

    print(f"Starting Romance City on http://localhost:{args.port} ...")
    uvicorn.run(
        "romance_city.app:app",
        host=HOST,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level,
    )


if __name__ == "__main__":
    main()
