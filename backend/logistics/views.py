import logging

from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from common.errors import AuthorizationError, RecordNotFound
from orders.models import Actor, Role

from .serializers import (
    AmountSerializer,
    AvailabilitySerializer,
    CheckoutSerializer,
    CompleteDeliverySerializer,
    CreateOrderSerializer,
    DeclineSerializer,
    DeliveryPartnerSerializer,
    DeliverySerializer,
    LocationSerializer,
    NearbyOrderSerializer,
    NearbyQuerySerializer,
    OrderListQuerySerializer,
    OrderSerializer,
    PaymentSerializer,
    RateSerializer,
    ReasonSerializer,
    RefundSerializer,
    StatusSerializer,
)
from .services import get_marketplace

logger = logging.getLogger(__name__)


def actor_for(request) -> Actor:
    """The marketplace identity of the authenticated user."""
    user = request.user
    return Actor(id=str(user.pk), role=Role(user.role))


def validated(serializer_class, data):
    serializer = serializer_class(data=data)
    serializer.is_valid(raise_exception=True)
    return serializer


def nearby_payload(matches):
    return NearbyOrderSerializer(matches, many=True).data


class OrderViewSet(viewsets.ViewSet):
    """
    Order lifecycle.
    - Customer: create, list/retrieve own orders, cancel, rate
    - Producer: confirm -> preparing -> ready_for_pickup
    - Delivery partner: available, accept, decline, picked_up -> in_transit
    Every state change goes through OrderService.transition().
    """
    permission_classes = [permissions.IsAuthenticated]

    def create(self, request):
        serializer = validated(CreateOrderSerializer, request.data)
        data = serializer.validated_data
        order, payment = get_marketplace().place_order(
            actor_for(request),
            serializer.line_items(),
            serializer.address(),
            data["payment_method"],
            gateway=data.get("gateway"),
            delivery_instructions=data["delivery_instructions"],
            customer_email=data.get("email") or request.user.email or None,
        )
        return Response({"order": OrderSerializer(order).data, "payment": PaymentSerializer(payment).data}, status=status.HTTP_201_CREATED)

    def list(self, request):
        query = validated(OrderListQuerySerializer, request.query_params).validated_data
        orders = get_marketplace().orders.list_orders(actor_for(request), status=query.get("status"))
        return Response(OrderSerializer(orders, many=True).data)

    def retrieve(self, request, pk=None):
        return Response(OrderSerializer(get_marketplace().orders.get_for(pk, actor_for(request))).data)

    @action(detail=True, methods=["post"])
    def status(self, request, pk=None):
        data = validated(StatusSerializer, request.data).validated_data
        order = get_marketplace().orders.transition(pk, actor_for(request), data["status"], note=data["note"])
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        data = validated(ReasonSerializer, request.data).validated_data
        order = get_marketplace().orders.cancel(pk, actor_for(request), data["reason"])
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"])
    def rate(self, request, pk=None):
        data = validated(RateSerializer, request.data).validated_data
        order = get_marketplace().orders.rate(pk, actor_for(request), data["rating"], data["review"])
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"])
    def accept(self, request, pk=None):
        assignment = get_marketplace().dispatcher.accept_order(pk, actor_for(request))
        return Response(
            {"order": OrderSerializer(assignment.order).data, "delivery": DeliverySerializer(assignment.delivery).data}
        )

    @action(detail=True, methods=["post"])
    def decline(self, request, pk=None):
        data = validated(DeclineSerializer, request.data).validated_data
        declined = get_marketplace().dispatcher.decline_order(pk, actor_for(request), data["reason"])
        return Response({"declined": declined})

    @action(detail=False, methods=["get"])
    def available(self, request):
        query = validated(NearbyQuerySerializer, request.query_params)
        data = query.validated_data
        matches = get_marketplace().dispatcher.available_orders(
            actor_for(request),
            origin=query.origin(),
            radius_km=data.get("radius_km"),
            limit=data["limit"],
            offset=data["offset"],
        )
        return Response(nearby_payload(matches))

    @action(detail=True, methods=["post"])
    def offer(self, request, pk=None):
        """Re-broadcast an open order (admin, or its producer)."""
        market = get_marketplace()
        actor = actor_for(request)
        order = market.orders.get(pk)
        if actor.role != Role.ADMIN and actor.id != order.producer_id:
            raise AuthorizationError("Only the producer or an admin can re-offer an order")
        matches = market.dispatcher.offer_order(pk)
        return Response({"offeredTo": [match.item.id for match in matches]})


class DeliveryViewSet(viewsets.ViewSet):
    permission_classes = [permissions.IsAuthenticated]

    def retrieve(self, request, pk=None):
        market = get_marketplace()
        delivery = market.tracker.get(pk)
        order = market.orders.get(delivery.order_id)
        if not order.is_party(actor_for(request)):
            raise AuthorizationError("Not allowed to view this delivery")
        return Response(DeliverySerializer(delivery).data)

    @action(detail=True, methods=["post"])
    def location(self, request, pk=None):
        data = validated(LocationSerializer, request.data).validated_data
        delivery = get_marketplace().tracker.add_route_point(
            pk, actor_for(request), data["latitude"], data["longitude"], speed=data["speed"]
        )
        return Response(DeliverySerializer(delivery).data)

    @action(detail=True, methods=["post"])
    def complete(self, request, pk=None):
        serializer = validated(CompleteDeliverySerializer, request.data)
        delivery = get_marketplace().tracker.complete(
            pk, actor_for(request), confirmation=serializer.confirmation(), note=serializer.validated_data["note"]
        )
        return Response(DeliverySerializer(delivery).data)


class PartnerViewSet(viewsets.ViewSet):
    permission_classes = [permissions.IsAuthenticated]

    @action(detail=False, methods=["post"])
    def availability(self, request):
        data = validated(AvailabilitySerializer, request.data).validated_data
        partner, nearby = get_marketplace().dispatcher.update_partner_status(
            actor_for(request),
            data["is_online"],
            is_available=data["is_available"],
            latitude=data["latitude"],
            longitude=data["longitude"],
        )
        return Response({"partner": DeliveryPartnerSerializer(partner).data, "nearbyOrders": nearby_payload(nearby)})


class PaymentViewSet(viewsets.ViewSet):
    """
    Payments are addressed by order id: /payments/<order_id>/...
    """
    permission_classes = [permissions.IsAuthenticated]

    def retrieve(self, request, pk=None):
        market = get_marketplace()
        market.orders.get_for(pk, actor_for(request))
        payment = market.ledger.get_for_order(pk)
        if payment is None:
            raise RecordNotFound(f"No payment for order {pk}")
        return Response(PaymentSerializer(payment).data)

    @action(detail=True, methods=["post"])
    def checkout(self, request, pk=None):
        """Open (or retry) the payment of an order."""
        data = validated(CheckoutSerializer, request.data).validated_data
        market = get_marketplace()
        actor = actor_for(request)
        order = market.orders.get(pk)
        if actor.role != Role.CUSTOMER or actor.id != order.customer_id:
            raise AuthorizationError("Only the ordering customer can pay")
        payment = market.ledger.initiate(
            order,
            gateway_name=data.get("gateway"),
            customer_email=data.get("email") or request.user.email or None,
        )
        return Response(PaymentSerializer(payment).data)

    @action(detail=True, methods=["post"], url_path="cod-confirm")
    def cod_confirm(self, request, pk=None):
        data = validated(AmountSerializer, request.data).validated_data
        payment = get_marketplace().ledger.confirm_cod(pk, actor_for(request), data["amount"])
        return Response(PaymentSerializer(payment).data)

    @action(detail=True, methods=["post"])
    def refund(self, request, pk=None):
        data = validated(RefundSerializer, request.data).validated_data
        payment = get_marketplace().ledger.refund(pk, actor_for(request), data["amount"], data["reason"])
        return Response(PaymentSerializer(payment).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        data = validated(ReasonSerializer, request.data).validated_data
        payment = get_marketplace().ledger.cancel(pk, actor_for(request), data["reason"])
        return Response(PaymentSerializer(payment).data)

    @action(detail=True, methods=["post"])
    def capture(self, request, pk=None):
        """PayPal: capture after the buyer approved the checkout."""
        payment = get_marketplace().ledger.capture(pk, actor_for(request))
        return Response(PaymentSerializer(payment).data)


class WebhookView(APIView):
    """
    Gateway callbacks: POST /api/v1/webhooks/<gateway>/
    No session or user; the gateway's signature is the authentication.
    """
    authentication_classes = []
    permission_classes = [permissions.AllowAny]

    def post(self, request, gateway):
        result = get_marketplace().webhooks.handle(gateway, request.body, request.headers)
        return Response({"received": result.acknowledged, "matched": result.matched})
