import logging

from django.db import DatabaseError, connection
from django.utils.timezone import now
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenObtainPairView

from .serializers import RoleClaimsTokenSerializer

logger = logging.getLogger(__name__)


class DBTestView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        try:
            with connection.cursor() as cursor:
                cursor.execute("SELECT 1")
                cursor.fetchone()
        except DatabaseError as e:
            logger.exception("Database check failed")
            return Response({"status": "error", "message": str(e)}, status=status.HTTP_503_SERVICE_UNAVAILABLE)
        return Response({"status": "success", "vendor": connection.vendor}, status=status.HTTP_200_OK)


class ServerNowView(APIView):
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({"now": int(now().timestamp() * 1000)})


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = RoleClaimsTokenSerializer
