from django.urls import path

from .views import OwnUsageView

urlpatterns = [
    path("", OwnUsageView.as_view(), name="own-usage"),
]
