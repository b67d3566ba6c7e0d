from django.contrib import admin
from .models import WalkSession


@admin.register(WalkSession)
class WalkSessionAdmin(admin.ModelAdmin):
    list_display = ("id", "user", "stake", "status", "duration_seconds", "multiplier", "payout", "created_at")
    list_filter = ("status",)
    search_fields = ("id", "user__email", "user__username")
    readonly_fields = (
        "server_seed_hash", "server_seed", "client_seed", "nonce", "hazard_second",
        "status", "payout", "created_at", "completed_at",
    )
