# dj_points/services/distribution.py
import logging
import time
from dataclasses import dataclass, field

from django.contrib.auth import get_user_model

from ..conf import points_settings
from ..exceptions import InvalidRequest, PointsException
from ..models import Transaction
from .common import LedgerService

logger = logging.getLogger(__name__)


@dataclass
class DistributionResult:
    users_updated: int = 0
    errors: list = field(default_factory=list)


class DistributionService:
    """
    Periodic points allowance for every active user.

    Each user is credited in its own transaction, so one failing account
    does not hold back the rest of the batch.
    """

    DESCRIPTION = "Automatic point distribution"

    @classmethod
    def distribute(cls, points=None, batch_size=None):
        if points is None:
            points = points_settings.DISTRIBUTION_POINTS_PER_CYCLE
        points = LedgerService.verify_amount(points)
        if batch_size is None:
            batch_size = points_settings.DISTRIBUTION_BATCH_SIZE
        if (
            isinstance(batch_size, bool)
            or not isinstance(batch_size, int)
            or batch_size < 1
        ):
            raise InvalidRequest("Batch size must be a positive integer.")

        started = time.monotonic()
        result = DistributionResult()
        user_ids = list(
            get_user_model()
            .objects.filter(is_active=True)
            .order_by("pk")
            .values_list("pk", flat=True)
        )
        if not user_ids:
            logger.info("No active users found for point distribution")
            return result

        User = get_user_model()
        for start in range(0, len(user_ids), batch_size):
            batch = User.objects.filter(pk__in=user_ids[start : start + batch_size])
            for user in batch:
                try:
                    LedgerService.get_or_create_account(user)
                    LedgerService.credit(
                        user,
                        points,
                        Transaction.KIND_EARNED,
                        cls.DESCRIPTION,
                        metadata={
                            "type": "automatic_distribution",
                            "source": "scheduler",
                            "reason": "system_reward",
                        },
                    )
                except PointsException as exc:
                    logger.error("Point distribution failed for user %s: %s", user.pk, exc)
                    result.errors.append(f"user {user.pk}: {exc}")
                else:
                    result.users_updated += 1

        logger.info(
            "Point distribution finished in %.0fms: %d users updated, %d errors",
            (time.monotonic() - started) * 1000,
            result.users_updated,
            len(result.errors),
        )
        return result
