import logging
import sys
from app.core.config import get_settings

# Third-party loggers that are chatty at INFO (request lines, watch stream chatter).
NOISY_LOGGERS = ("httpx", "httpcore", "google.cloud.firestore_v1.watch", "google.api_core.bidi")


def setup_logging():
    """
    Configures logging for the whole service.

    Plain stdout logging by default, switched to rich's handler when the
    library is importable so development logs are colored.
    """
    settings = get_settings()
    log_level = settings.LOG_LEVEL.upper()

    logging.basicConfig(
        level=log_level,
        stream=sys.stdout,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    try:
        from rich.logging import RichHandler
        logging.basicConfig(
            level=log_level,
            force=True,
            format="%(message)s",
            datefmt="[%X]",
            handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        )
        logging.info("Rich logger enabled for development.")
    except ImportError:
        logging.info("Rich library not found. Using standard logger.")

    # Make uvicorn use the root logger config
    logging.getLogger("uvicorn.access").handlers = logging.getLogger().handlers
    logging.getLogger("uvicorn.error").handlers = logging.getLogger().handlers

    if log_level != "DEBUG":
        for name in NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
