import logging
import time
import uuid

logger = logging.getLogger(__name__)


def new_request_id() -> str:
    return str(uuid.uuid4())[:8]


class LogContext:
    """Context manager for tracking and logging operation metrics"""
    def __init__(self, operation_name: str, **kwargs):
        self.operation_name = operation_name
        self.start_time = None
        self.request_id = kwargs.pop('request_id', None) or new_request_id()
        self.extra = kwargs

    def __enter__(self):
        self.start_time = time.perf_counter()
        logger.info(f"Starting {self.operation_name}", extra={"request_id": self.request_id, **self.extra})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.perf_counter() - self.start_time
        if exc_type:
            logger.error(
                f"Failed {self.operation_name} in {duration:.2f}s: {str(exc_val)}",
                extra={"request_id": self.request_id, "duration": duration, **self.extra},
                exc_info=(exc_type, exc_val, exc_tb)
            )
        else:
            logger.info(
                f"Completed {self.operation_name} in {duration:.2f}s",
                extra={"request_id": self.request_id, "duration": duration, **self.extra}
            )
        # Never suppress the exception
        return False
