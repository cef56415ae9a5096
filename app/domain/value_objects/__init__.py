"""Value objects of the booking domain."""

from app.domain.value_objects.money import Money

__all__ = ["Money"]
