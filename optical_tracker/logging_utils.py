import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(device)s] %(message)s"


class DeviceNameFilter(logging.Filter):
    """Stamps every record with the tracker device id for the [%(device)s] field."""

    def __init__(self, device_id: str):
        super().__init__()
        self.device_id = device_id

    def filter(self, record: logging.LogRecord) -> bool:
        record.device = self.device_id
        return True


def _device_handler(handler: logging.Handler, device_id: str) -> logging.Handler:
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(DeviceNameFilter(device_id))
    return handler


def setup_logger(device_id: str, level: int | str = logging.INFO) -> logging.Logger:
    """Logger for one tracker device; the console handler is attached once."""
    logger = logging.getLogger(f"optical_tracker.{device_id}")
    logger.setLevel(level)
    if not logger.handlers:
        logger.addHandler(_device_handler(logging.StreamHandler(), device_id))
    return logger


def add_file_handler(logger: logging.Logger, device_id: str, log_path: str) -> logging.Handler:
    """Attach a session log file; the caller removes and closes the returned handler."""
    handler = _device_handler(logging.FileHandler(log_path, encoding="utf-8"), device_id)
    logger.addHandler(handler)
    return handler
