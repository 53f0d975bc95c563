"""Logging filter adding the current request id to every record."""

from logging import Filter, LogRecord

from .middleware import REQUEST_ID_CTX


class RequestIdFilter(Filter):
    """Attach ``record.request_id`` from ``REQUEST_ID_CTX``.

    Outside a request the context default ("-") is used, so the JSON
    formatter can always reference ``%(request_id)s``.
    """

    def filter(self, record: LogRecord) -> bool:
        record.request_id = REQUEST_ID_CTX.get()
        return True
