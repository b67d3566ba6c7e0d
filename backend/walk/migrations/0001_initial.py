import uuid

import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="WalkSession",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("stake", models.BigIntegerField()),
                ("server_seed", models.CharField(max_length=128)),
                ("server_seed_hash", models.CharField(db_index=True, max_length=64)),
                ("client_seed", models.CharField(max_length=64)),
                ("nonce", models.PositiveBigIntegerField()),
                ("hazard_second", models.PositiveSmallIntegerField(blank=True, null=True)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("ACTIVE", "Active"),
                            ("COMPLETED_WIN", "Completed (win)"),
                            ("COMPLETED_LOSS", "Completed (loss)"),
                            ("ABANDONED_WIN", "Abandoned (win)"),
                            ("ABANDONED_LOSS", "Abandoned (loss)"),
                        ],
                        db_index=True,
                        default="ACTIVE",
                        max_length=16,
                    ),
                ),
                ("duration_seconds", models.PositiveSmallIntegerField(blank=True, null=True)),
                ("multiplier", models.DecimalField(blank=True, decimal_places=2, max_digits=12, null=True)),
                ("payout", models.BigIntegerField(default=0)),
                ("created_at", models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="walk_sessions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(status="ACTIVE"),
                        fields=("user",),
                        name="one_active_walk_per_user",
                    ),
                    models.UniqueConstraint(
                        fields=("user", "nonce"),
                        name="unique_walk_nonce_per_user",
                    ),
                ],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="walk_status_created_idx"),
                    models.Index(fields=["user", "created_at"], name="walk_user_created_idx"),
                ],
            },
        ),
    ]
