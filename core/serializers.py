from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from users.helpers import user_app_roles


class RoleClaimsTokenSerializer(TokenObtainPairSerializer):
    """Adds the user's application roles to the access token."""

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token["username"] = user.username
        token["roles"] = sorted(user_app_roles(user))
        token["is_admin"] = bool(user.is_admin)
        return token
