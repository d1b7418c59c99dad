from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView

urlpatterns = [
    path("api", include("eventstore.urls")),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
]
