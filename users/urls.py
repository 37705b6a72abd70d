from django.urls import path
from rest_framework.routers import DefaultRouter

from .views import AppRoleChoicesView, CurrentUserView, RoleRequestViewSet

router = DefaultRouter()
router.register(r'role-requests', RoleRequestViewSet, basename='role-request')

urlpatterns = [
    path("me/", CurrentUserView.as_view(), name="current-user"),
    path("roles/", AppRoleChoicesView.as_view(), name="app-roles-list"),
]

urlpatterns += router.urls
