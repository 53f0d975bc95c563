import logging

from django.conf import settings
from django.db import DatabaseError, connection
from django.http import JsonResponse

from apps.checkout.tables import HttpTableClient, tables_cb

logger = logging.getLogger("monitoring.health")


def health_view(_request):
    """Report the local database and, when enabled, the hosted table API."""
    db_ok = False
    try:
        with connection.cursor() as cur:
            cur.execute("SELECT 1;")
        db_ok = True
    except DatabaseError:
        logger.exception("health: local database check failed")

    components = {"db": {"ok": db_ok}}
    ok = db_ok
    if settings.USE_HTTP_ADAPTERS:
        tables_ok = HttpTableClient().ping()
        components["tables"] = {"ok": tables_ok, "circuit": tables_cb.state}
        ok = ok and tables_ok

    code = 200 if ok else 503
    return JsonResponse({"ok": ok, "components": components}, status=code)
