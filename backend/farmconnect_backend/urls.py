from django.contrib import admin
from django.urls import path, include
from rest_framework.routers import DefaultRouter
from users.views import RegisterView, UserDetailView
from logistics.views import DeliveryViewSet, OrderViewSet, PartnerViewSet, PaymentViewSet, WebhookView

router = DefaultRouter()
router.register(r'orders', OrderViewSet, basename='order')
router.register(r'deliveries', DeliveryViewSet, basename='delivery')
router.register(r'partners', PartnerViewSet, basename='partner')
router.register(r'payments', PaymentViewSet, basename='payment')

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/v1/', include(router.urls)),
    path('api/v1/webhooks/<str:gateway>/', WebhookView.as_view(), name='payment-webhook'),
    path('api/v1/auth/register/', RegisterView.as_view(), name='register'),
    path('api/v1/auth/me/', UserDetailView.as_view(), name='user-detail'),
]
