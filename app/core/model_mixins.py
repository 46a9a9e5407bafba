"""
Abstract mixins combined with core.models.BaseModel.

List mixins before BaseModel:

    class Group(UUIDPrimaryKeyMixin, BaseModel):
        ...
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    Random UUID primary key, assigned on instantiation.

    Group and message ids go to clients as-is and reveal nothing about
    record counts.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True
