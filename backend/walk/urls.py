# walk/urls.py
from django.urls import path
from . import views

urlpatterns = [
    path("start/", views.start_session, name="walk-start"),
    path("cashout/", views.cashout, name="walk-cashout"),
    path("active/", views.active_sessions, name="walk-active"),
    path("history/", views.history, name="walk-history"),
    path("curve/", views.curve, name="walk-curve"),
    path("session/<uuid:session_id>/", views.session_state, name="walk-state"),
    path("verify/<uuid:session_id>/", views.verify, name="walk-verify"),
]
