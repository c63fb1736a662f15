class PointsHolderMixin:
    """
    Adds points helpers to a user model.

    class User(PointsHolderMixin, AbstractUser):
        ...
    """

    @property
    def points_account(self):
        """The user's account, opened on first access."""
        from .utils import get_ledger_service

        return get_ledger_service().get_or_create_account(self)

    @property
    def available_points(self):
        from .models import Account

        return (
            Account.objects.filter(user=self)
            .values_list("available_points", flat=True)
            .first()
            or 0
        )

    def cheer(self, recipient, amount, message=""):
        from .utils import get_transfer_service

        return get_transfer_service().transfer(self, recipient, amount, message)

    def checkout(self, items):
        from .utils import get_checkout_service

        return get_checkout_service().checkout(self, items)
