from django.contrib.auth.backends import ModelBackend

from users.services import is_provider_banned


class ProviderBanBackend(ModelBackend):
    """
    Username/password auth that also refuses accounts whose sign-in
    provider account is banned. Applies to existing sessions too, since
    ``get_user`` goes through ``user_can_authenticate``.
    """

    def user_can_authenticate(self, user):
        return super().user_can_authenticate(user) and not is_provider_banned(user)
