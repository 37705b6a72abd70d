from rest_framework.routers import DefaultRouter

from .views import PurchaseRequestViewSet, RFQQuotationViewSet, RFQViewSet, VendorViewSet

router = DefaultRouter()
router.register(r'vendors', VendorViewSet, basename='vendor')
router.register(r'rfqs', RFQViewSet, basename='rfq')
router.register(r'rfq-quotations', RFQQuotationViewSet, basename='rfq-quotation')
router.register(r'purchase-requests', PurchaseRequestViewSet, basename='purchase-request')

urlpatterns = router.urls
