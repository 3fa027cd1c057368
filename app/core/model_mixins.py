"""
Model mixins providing reusable functionality for Django models.

This module contains abstract mixin classes that can be combined with
BaseModel to add specific functionality. These are generic infrastructure
classes with no domain-specific logic.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key
    AppendOnlyMixin: Rows can be inserted but never updated or deleted

Usage:
    from core.models import BaseModel
    from core.model_mixins import AppendOnlyMixin, UUIDPrimaryKeyMixin

    class AuditEntry(AppendOnlyMixin, UUIDPrimaryKeyMixin, BaseModel):
        message = models.TextField()

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

from django.db import models

from core.exceptions import ConflictError

if TYPE_CHECKING:
    from typing import Any


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Benefits:
        - Non-guessable IDs (safe to embed in provider metadata and URLs)
        - Can be generated client-side before database insert
        - URLs don't reveal record count or order

    Fields:
        id: UUIDField as primary key (auto-generated)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class AppendOnlyMixin(models.Model):
    """
    Forbid updates and deletes on a model.

    The first save inserts the row; any later save or delete raises
    ConflictError. Queryset-level update()/delete() are not intercepted,
    so code paths that need immutability must go through the instance API.

    Usage:
        entry = AuditEntry.objects.create(message="created")
        entry.message = "edited"
        entry.save()  # raises ConflictError
    """

    class Meta:
        abstract = True

    def save(self, *args: Any, **kwargs: Any) -> None:
        """Insert the row; refuse to overwrite an existing one."""
        if not self._state.adding:
            raise ConflictError(
                f"{self.__class__.__name__} is append-only",
                error_code="APPEND_ONLY",
                details={"pk": str(self.pk)},
            )
        kwargs["force_insert"] = True
        super().save(*args, **kwargs)

    def delete(self, *args: Any, **kwargs: Any):
        """Refuse to delete."""
        raise ConflictError(
            f"{self.__class__.__name__} is append-only",
            error_code="APPEND_ONLY",
            details={"pk": str(self.pk)},
        )
