"""
Model mixins combined with core.models.BaseModel.

Mixins:
    UUIDPrimaryKeyMixin: Random UUID primary key

Usage:
    class DeadLetterEvent(UUIDPrimaryKeyMixin, BaseModel):
        reason = models.CharField(max_length=40)
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use a UUID4 primary key instead of an auto-increment integer.

    The identifier is generated in Python before insert, so it can be
    handed to external systems (for example embedded as a correlation
    token) in the same request that creates the row. IDs are never
    reused and reveal nothing about record count.

    Fields:
        id: UUIDField primary key (auto-generated)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True
