import logging
import sys

# Configure logging format
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def setup_logger(name: str = "inkpost", level=logging.INFO) -> logging.Logger:
    """
    Sets up a logger with consistent formatting.

    The library itself only logs through module loggers; call this from
    scripts or applications that want the output on stdout.

    Args:
        name: Name of the logger (default: the package root, covering all modules)
        level: Logging level, as a number or a name like "DEBUG" (default: INFO)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Avoid adding handlers multiple times
    if not logger.handlers:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        logger.addHandler(console_handler)

    return logger
