import os
import sys
import uvicorn
import logging
import fcntl
from pathlib import Path
from dotenv import load_dotenv

# Configure logging to write to both stderr and a file immediately.
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[
        logging.StreamHandler(sys.stderr),
        logging.FileHandler("api_server.log", mode="a")
    ]
)
logger = logging.getLogger("api_server")


def _load_local_env() -> None:
    """
    Load local environment variables from config/secrets.env (if present).

    ESCROWTRADER_* overrides placed there are picked up by the config loader.
    """
    env_path = Path(__file__).resolve().parent / "config" / "secrets.env"
    if env_path.exists():
        load_dotenv(env_path)
        logger.info("Loaded environment variables from %s", env_path)


def main() -> None:
    _load_local_env()

    from escrowtrader.utils.config_loader import load_config

    cfg = load_config()
    api_cfg = cfg.get("api", {}) or {}
    host = str(api_cfg.get("host", "127.0.0.1"))
    port = int(api_cfg.get("port", 8000))

    # Enforce single-instance operation: the ledger engine serializes operations in-process,
    # so a second server on the same database must not start.
    lock_path = Path(".api_server.lock")
    try:
        lock_f = lock_path.open("w")
        fcntl.flock(lock_f.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        lock_f.write(str(os.getpid()))
        lock_f.flush()
        # Keep lock file handle alive for process lifetime.
    except OSError:
        logger.error("Another API instance appears to be running (lockfile busy). Exiting.")
        sys.exit(1)

    try:
        logger.info("Starting EscrowTrader API server on %s:%s", host, port)

        uvicorn.run(
            "escrowtrader.api.app:app",
            host=host,
            port=port,
            reload=False,
            log_level="info",
            loop="auto",
            workers=1  # One engine per database
        )
    except Exception as e:
        logger.error(f"Fatal error in API server: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
