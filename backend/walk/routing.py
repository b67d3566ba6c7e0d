from django.urls import re_path
from .consumers import WalkConsumer

websocket_urlpatterns = [
    re_path(r"ws/walk/$", WalkConsumer.as_asgi()),
]
