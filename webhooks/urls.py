from django.urls import path

from .views import ProviderCallbackView

urlpatterns = [
    path("<str:provider>/", ProviderCallbackView.as_view(), name="provider-callback"),
]
