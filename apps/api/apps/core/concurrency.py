"""
Optimistic concurrency on row_version.

Writers lock the row with select_for_update(), then write through
compare_and_swap() so a stale row_version never overwrites a newer one.
"""
from django.db.models import F
from django.utils import timezone

from apps.core.observability import metrics
from apps.core.observability.events import log_concurrency_conflict


def check_row_version(instance, expected_version):
    """Raise ConcurrentModification when a caller's row_version is stale."""
    from apps.clinical.exceptions import ConcurrentModification

    if expected_version is not None and int(expected_version) != instance.row_version:
        _conflict(instance, expected_version)
        raise ConcurrentModification(type(instance).__name__, instance.pk, expected_version)


def compare_and_swap(instance, expected_version, **fields):
    """
    Update ``fields`` only if the row still has ``expected_version``.

    Bumps row_version and refreshes ``instance`` from the database.

    Raises:
        ConcurrentModification: zero rows matched
    """
    from apps.clinical.exceptions import ConcurrentModification

    model = type(instance)
    if hasattr(instance, 'updated_at'):
        fields.setdefault('updated_at', timezone.now())
    updated = model.objects.filter(pk=instance.pk, row_version=expected_version).update(
        row_version=F('row_version') + 1,
        **fields
    )
    if not updated:
        _conflict(instance, expected_version)
        raise ConcurrentModification(model.__name__, instance.pk, expected_version)
    instance.refresh_from_db()
    return instance


def _conflict(instance, expected_version):
    entity = type(instance).__name__
    metrics.concurrency_conflicts_total.labels(entity=entity).inc()
    log_concurrency_conflict(entity, instance.pk, expected_version)
