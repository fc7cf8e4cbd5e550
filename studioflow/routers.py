from rest_framework.routers import DefaultRouter

router = DefaultRouter()

# Admin Usage events
from usage.views import UsageEventAdminViewSet
router.register(r"admin/usage", UsageEventAdminViewSet, basename="admin-usage")

# Admin provider callback journal
from webhooks.views import ProviderCallbackAdminViewSet
router.register(r"admin/callbacks", ProviderCallbackAdminViewSet, basename="admin-callbacks")
