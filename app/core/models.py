"""
Abstract timestamped base model.

Every chat table carries created_at and updated_at. created_at doubles as
the ordering key for message history and membership order, so it is
indexed.

Usage:
    from core.model_mixins import UUIDPrimaryKeyMixin
    from core.models import BaseModel

    class Message(UUIDPrimaryKeyMixin, BaseModel):
        content = models.TextField()

List mixins before BaseModel so their fields and Meta come first.
"""

from __future__ import annotations

from django.db import models


class BaseModel(models.Model):
    """
    Abstract model with creation and modification timestamps.

    Subclasses may redeclare created_at when they need to stamp it
    themselves (see chat.models.Group).
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="Timestamp when this record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when this record was last modified",
    )

    class Meta:
        abstract = True
        ordering = ["-created_at"]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}(id={self.pk})"
