from django.urls import path
from . import views

urlpatterns = [
    path("balance/", views.balance, name="wallet-balance"),
    path("transactions/", views.transactions, name="wallet-transactions"),
]
