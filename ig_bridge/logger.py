import logging
import sys

logger = logging.getLogger("ig_bridge")
formatter = logging.Formatter(
    "%(asctime)s %(levelname)s [%(module)s:%(funcName)s:%(lineno)d] %(message)s"
)

_stream_handler: logging.Handler | None = None


def configure_logging(debug: bool = False) -> logging.Logger:
    """Attach a stdout handler to the bridge logger (once) and set its level."""
    global _stream_handler
    if _stream_handler is None:
        _stream_handler = logging.StreamHandler(sys.stdout)
        _stream_handler.setFormatter(formatter)
        logger.addHandler(_stream_handler)
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    return logger
