import logging
import sys

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def get_logger(name: str, verbose: bool = False) -> logging.Logger:
    """
    Logger writing to stderr; stdout carries the histogram table.
    """
    logger = logging.getLogger(f"kmer_spectrum.{name}")
    if logger.handlers:
        return logger
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    return logger


def set_verbose(verbose: bool) -> None:
    """Switch every kmer_spectrum logger between DEBUG and INFO."""
    level = logging.DEBUG if verbose else logging.INFO
    for name, logger in logging.root.manager.loggerDict.items():
        if name.startswith("kmer_spectrum.") and isinstance(logger, logging.Logger):
            logger.setLevel(level)
