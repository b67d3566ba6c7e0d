from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from .models import Wallet, LedgerEntry
from .serializers import WalletSerializer, LedgerEntrySerializer


# ---------------------------------------------------
# BALANCE
# ---------------------------------------------------
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def balance(request):
    wallet, _ = Wallet.objects.get_or_create(user=request.user)
    return Response(WalletSerializer(wallet).data)


# ---------------------------------------------------
# LEDGER
# ---------------------------------------------------
@api_view(["GET"])
@permission_classes([IsAuthenticated])
def transactions(request):
    try:
        limit = min(max(int(request.query_params.get("limit", 50)), 1), 200)
    except ValueError:
        limit = 50

    qs = LedgerEntry.objects.filter(user=request.user).order_by("-created_at", "-id")[:limit]
    return Response(LedgerEntrySerializer(qs, many=True).data)
