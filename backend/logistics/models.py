from django.db import models


class Document(models.Model):
    """
    One marketplace record (order, payment, delivery, partner...) stored as JSON.
    The body is the record as a JSON document; `version` is bumped by every conditional
    update so concurrent writers detect each other (see logistics/store.py).
    """
    collection = models.CharField(max_length=32)
    key = models.CharField(max_length=128)
    version = models.PositiveIntegerField(default=1)
    body = models.JSONField()

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["collection", "key"], name="unique_document_key"),
        ]
        indexes = [models.Index(fields=["collection", "created_at"], name="document_collection_created")]

    def __str__(self):
        return f"{self.collection}/{self.key} v{self.version}"
