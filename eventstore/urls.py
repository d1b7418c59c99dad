from django.urls import re_path

from eventstore.views import KeyCreateView, KeyHistoryView, KeyValueView

app_name = "eventstore"

# Mounted under "api"; the trailing slash is optional on every route
urlpatterns = [
    re_path(r"^/?$", KeyCreateView.as_view(), name="kv-create"),
    re_path(r"^/(?P<key>[^/]+)/?$", KeyValueView.as_view(), name="kv-detail"),
    re_path(r"^/(?P<key>[^/]+)/history/?$", KeyHistoryView.as_view(), name="kv-history"),
]
