"""Idempotency utilities for order submissions.

A client that retries an order submission with the same ``Idempotency-Key``
gets the first attempt's response back instead of a second order. Keys are
scoped to the submitting user; reusing a key with a different payload is a
conflict.
"""

import hashlib
import json

from django.db import IntegrityError, transaction

from .models import IdempotencyKey


def _hash(payload: dict) -> str:
    """Stable SHA-256 of a JSON-serializable payload (sorted keys, compact)."""
    body = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(body.encode("utf-8")).hexdigest()


@transaction.atomic
def get_or_create_idempotent(key: str, user_id: str, payload: dict):
    """Get-or-create the record for ``key``.

    Returns:
        tuple[bool, IdempotencyKey]: ``(existing, rec)``; ``existing`` is True
        when an earlier request already used the key with the same payload.

    Raises:
        ValueError: ``IDEMPOTENCY_CONFLICT`` when the key was used by another
            user or with a different payload.
    """
    h = _hash(payload)

    try:
        # savepoint: an IntegrityError only rolls back this block
        with transaction.atomic():
            rec = IdempotencyKey.objects.create(
                key=key, user_id=user_id, request_hash=h, response_status=0, response_body={}
            )
            return False, rec
    except IntegrityError:
        rec = IdempotencyKey.objects.select_for_update().get(key=key)
        if rec.request_hash != h or rec.user_id != user_id:
            raise ValueError("IDEMPOTENCY_CONFLICT")
        return True, rec


def finalize(rec: IdempotencyKey, status_code: int, body: dict, order_id=None):
    """Store the response so later retries replay it without side effects."""
    rec.response_status = status_code
    rec.response_body = body
    if order_id is not None:
        rec.order_id = str(order_id)
    rec.save(update_fields=["response_status", "response_body", "order_id"])
