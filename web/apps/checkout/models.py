from django.db import models


class IdempotencyKey(models.Model):
    """Stored outcome of an order submission sent with an ``Idempotency-Key``.

    Orders themselves live in the hosted database; only the key, the request
    fingerprint and the response replayed on retries are kept locally.
    """

    key = models.CharField(max_length=200, primary_key=True)
    user_id = models.CharField(max_length=64)
    request_hash = models.CharField(max_length=64)
    response_status = models.PositiveSmallIntegerField(default=0)
    response_body = models.JSONField(default=dict)
    order_id = models.CharField(max_length=64, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "checkout_idempotency_keys"
