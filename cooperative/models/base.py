"""
Base Models and Fields for the Cooperative Portal
==================================================

Provides:
- UUID primary keys
- Common timestamp fields
- Closed status enumerations with a single canonical spelling
- A status field that normalises casing at the storage edge
"""

from django.db import models
import uuid


class NormalizedChoices(models.TextChoices):
    """
    TextChoices with a normalisation entry point

    Legacy rows carry statuses such as 'Active', ' PENDING ' or
    'Revision Requested'. `normalize()` maps any of those spellings onto
    the canonical member and rejects everything else.
    """

    @classmethod
    def canonical(cls, value):
        return str(value).strip().lower().replace(' ', '_').replace('-', '_')

    @classmethod
    def normalize(cls, value):
        if isinstance(value, cls):
            return value
        if value is None:
            raise ValueError(f"{cls.__name__} cannot be empty")
        try:
            return cls(cls.canonical(value))
        except ValueError:
            raise ValueError(f"Unknown {cls.__name__} value: {value!r}") from None


class StatusField(models.CharField):
    """
    CharField storing a canonical lower-case status

    Values are normalised when assigned through forms, when saved, when used
    in lookups and when read back from the database, so filters such as
    `status='Active'` and rows written as 'ACTIVE' by older code agree.
    """

    def __init__(self, *args, **kwargs):
        kwargs.setdefault('max_length', 30)
        kwargs.setdefault('db_index', True)
        super().__init__(*args, **kwargs)

    @staticmethod
    def _normalize(value):
        if value is None or value == '':
            return value
        return NormalizedChoices.canonical(value)

    def from_db_value(self, value, expression, connection):
        return self._normalize(value)

    def to_python(self, value):
        return self._normalize(super().to_python(value))

    def get_prep_value(self, value):
        return self._normalize(super().get_prep_value(value))

    def pre_save(self, model_instance, add):
        value = self._normalize(getattr(model_instance, self.attname))
        setattr(model_instance, self.attname, value)
        return value


class BaseModel(models.Model):
    """
    Base model with common fields

    Features:
    - UUID primary key
    - Timestamp tracking (created, updated)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False
    )

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When this record was created"
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="When this record was last updated"
    )

    class Meta:
        abstract = True
        ordering = ['-created_at']
