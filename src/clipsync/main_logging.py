"""Logging configuration for the clipsync CLI."""
import logging


def configure_logging(verbose: bool, log_file: str | None = None) -> None:
    """Configure logging level and destinations.

    Args:
        verbose: If True, set DEBUG level; otherwise INFO level.
        log_file: Optional path of an additional log file.

    Errors are always printed to stderr regardless of verbosity.
    """
    level = logging.DEBUG if verbose else logging.INFO
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        handlers.append(file_handler)
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        handlers=handlers,
    )
    # httpx logs every request at INFO.
    if not verbose:
        logging.getLogger("httpx").setLevel(logging.WARNING)
