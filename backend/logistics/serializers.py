from enum import Enum

from rest_framework import serializers

from deliveries.models import DeliveryConfirmation
from orders.models import Address, OrderStatus, PaymentMethod


class AddressSerializer(serializers.Serializer):
    street = serializers.CharField()
    city = serializers.CharField()
    state = serializers.CharField()
    zip_code = serializers.CharField()
    latitude = serializers.FloatField(required=False, min_value=-90, max_value=90)
    longitude = serializers.FloatField(required=False, min_value=-180, max_value=180)

    def validate(self, attrs):
        if ("latitude" in attrs) != ("longitude" in attrs):
            raise serializers.ValidationError("Send both latitude and longitude, or neither")
        return attrs

    def to_address(self) -> Address:
        return address_from(self.validated_data)


def address_from(data) -> Address:
    """Validated address fields -> Address."""
    coordinates = None
    if "latitude" in data:
        coordinates = (data["latitude"], data["longitude"])
    return Address(
        street=data["street"],
        city=data["city"],
        state=data["state"],
        zip_code=data["zip_code"],
        coordinates=coordinates,
    )


class OrderItemSerializer(serializers.Serializer):
    product_id = serializers.CharField()
    quantity = serializers.IntegerField(min_value=1)


class CreateOrderSerializer(serializers.Serializer):
    """
    Checkout payload. Prices come from the catalog, never from the client.
    """
    items = OrderItemSerializer(many=True, allow_empty=False)
    delivery_address = AddressSerializer()
    payment_method = serializers.ChoiceField(choices=[method.value for method in PaymentMethod])
    delivery_instructions = serializers.CharField(required=False, allow_blank=True, default="")
    gateway = serializers.CharField(required=False)
    email = serializers.EmailField(required=False)

    def address(self) -> Address:
        return address_from(self.validated_data["delivery_address"])

    def line_items(self):
        return [(item["product_id"], item["quantity"]) for item in self.validated_data["items"]]


class StatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[status.value for status in OrderStatus])
    note = serializers.CharField(required=False, allow_blank=True, default="")


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField()


class DeclineSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class RateSerializer(serializers.Serializer):
    rating = serializers.IntegerField(min_value=1, max_value=5)
    review = serializers.CharField(required=False, allow_blank=True, default="")


class NearbyQuerySerializer(serializers.Serializer):
    latitude = serializers.FloatField(required=False, min_value=-90, max_value=90)
    longitude = serializers.FloatField(required=False, min_value=-180, max_value=180)
    radius_km = serializers.FloatField(required=False, min_value=0)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=100, default=20)
    offset = serializers.IntegerField(required=False, min_value=0, default=0)

    def origin(self):
        data = self.validated_data
        if "latitude" in data and "longitude" in data:
            return (data["latitude"], data["longitude"])
        return None


class LocationSerializer(serializers.Serializer):
    latitude = serializers.FloatField()
    longitude = serializers.FloatField()
    speed = serializers.FloatField(required=False, default=0.0)


class CompleteDeliverySerializer(serializers.Serializer):
    customer_signature = serializers.CharField(required=False, allow_null=True, default=None)
    customer_photo = serializers.CharField(required=False, allow_null=True, default=None)
    customer_note = serializers.CharField(required=False, allow_blank=True, default="")
    note = serializers.CharField(required=False, allow_blank=True, default="")

    def confirmation(self) -> DeliveryConfirmation:
        data = self.validated_data
        return DeliveryConfirmation(
            customer_signature=data["customer_signature"],
            customer_photo=data["customer_photo"],
            customer_note=data["customer_note"],
        )


class AvailabilitySerializer(serializers.Serializer):
    is_online = serializers.BooleanField()
    is_available = serializers.BooleanField(required=False, allow_null=True, default=None)
    latitude = serializers.FloatField(required=False, allow_null=True, default=None)
    longitude = serializers.FloatField(required=False, allow_null=True, default=None)


class CheckoutSerializer(serializers.Serializer):
    gateway = serializers.CharField(required=False)
    email = serializers.EmailField(required=False)


class AmountSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2)


class RefundSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=12, decimal_places=2, min_value=0)
    reason = serializers.CharField()


class OrderListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=[status.value for status in OrderStatus], required=False)


# ----------------
# Responses (read-only views of marketplace records)
# ----------------
class EnumValueField(serializers.Field):
    """An Enum member rendered as its value."""

    def __init__(self, **kwargs):
        kwargs["read_only"] = True
        super().__init__(**kwargs)

    def to_representation(self, value):
        return value.value if isinstance(value, Enum) else value


class MoneyField(serializers.DecimalField):
    def __init__(self, **kwargs):
        kwargs.setdefault("max_digits", 12)
        kwargs.setdefault("decimal_places", 2)
        kwargs["read_only"] = True
        super().__init__(**kwargs)


class CoordinatesField(serializers.ListField):
    """(lat, lon) as [lat, lon]."""
    child = serializers.FloatField()


class LineItemSerializer(serializers.Serializer):
    product_id = serializers.CharField(read_only=True)
    quantity = serializers.IntegerField(read_only=True)
    unit_price = MoneyField()
    total = MoneyField()


class OrderAddressSerializer(serializers.Serializer):
    street = serializers.CharField(read_only=True)
    city = serializers.CharField(read_only=True)
    state = serializers.CharField(read_only=True)
    zip_code = serializers.CharField(read_only=True)
    coordinates = CoordinatesField(read_only=True)


class StatusChangeSerializer(serializers.Serializer):
    status = EnumValueField()
    actor_id = serializers.CharField(read_only=True)
    timestamp = serializers.DateTimeField(read_only=True)
    note = serializers.CharField(read_only=True)


class OrderSerializer(serializers.Serializer):
    id = serializers.CharField(read_only=True)
    order_number = serializers.CharField(read_only=True)
    customer_id = serializers.CharField(read_only=True)
    producer_id = serializers.CharField(read_only=True)
    items = LineItemSerializer(many=True, read_only=True)
    delivery_address = OrderAddressSerializer(read_only=True)
    payment_method = EnumValueField()
    created_at = serializers.DateTimeField(read_only=True)

    subtotal = MoneyField()
    delivery_fee = MoneyField()
    tax = MoneyField()
    final_amount = MoneyField()

    order_status = EnumValueField()
    status_history = StatusChangeSerializer(many=True, read_only=True)
    payment_status = EnumValueField()
    payment_id = serializers.CharField(read_only=True)

    delivery_partner_id = serializers.CharField(read_only=True)
    delivery_partner_status = EnumValueField()
    delivery_partner_assigned_at = serializers.DateTimeField(read_only=True)
    delivery_partner_accepted_at = serializers.DateTimeField(read_only=True)
    assignment_count = serializers.IntegerField(read_only=True)

    pickup_location = CoordinatesField(read_only=True)
    delivery_instructions = serializers.CharField(read_only=True)
    priority = serializers.CharField(read_only=True)
    estimated_delivery_time = serializers.DateTimeField(read_only=True)
    actual_delivery_time = serializers.DateTimeField(read_only=True)

    customer_rating = serializers.IntegerField(read_only=True)
    customer_review = serializers.CharField(read_only=True)

    cancellation_reason = serializers.CharField(read_only=True)
    cancelled_by = serializers.CharField(read_only=True)
    cancellation_time = serializers.DateTimeField(read_only=True)


class RoutePointSerializer(serializers.Serializer):
    latitude = serializers.FloatField(read_only=True)
    longitude = serializers.FloatField(read_only=True)
    timestamp = serializers.DateTimeField(read_only=True)
    speed = serializers.FloatField(read_only=True)


class DeliveryStatusUpdateSerializer(serializers.Serializer):
    status = EnumValueField()
    timestamp = serializers.DateTimeField(read_only=True)
    location = CoordinatesField(read_only=True)
    note = serializers.CharField(read_only=True)


class DeliveryConfirmationSerializer(serializers.Serializer):
    customer_signature = serializers.CharField(read_only=True)
    customer_photo = serializers.CharField(read_only=True)
    customer_note = serializers.CharField(read_only=True)
    delivered_at = serializers.DateTimeField(read_only=True)


class DeliveryPerformanceSerializer(serializers.Serializer):
    on_time_delivery = serializers.BooleanField(read_only=True)
    delivery_minutes = serializers.IntegerField(read_only=True)


class DeliverySerializer(serializers.Serializer):
    id = serializers.CharField(read_only=True)
    order_id = serializers.CharField(read_only=True)
    delivery_partner_id = serializers.CharField(read_only=True)
    created_at = serializers.DateTimeField(read_only=True)
    pickup_location = CoordinatesField(read_only=True)
    delivery_location = CoordinatesField(read_only=True)
    status = EnumValueField()
    status_updates = DeliveryStatusUpdateSerializer(many=True, read_only=True)
    route = RoutePointSerializer(many=True, read_only=True)
    pickup_time = serializers.DateTimeField(read_only=True)
    delivery_time = serializers.DateTimeField(read_only=True)
    # minutes
    estimated_duration = serializers.IntegerField(read_only=True)
    actual_duration = serializers.IntegerField(read_only=True)
    confirmation = DeliveryConfirmationSerializer(read_only=True)
    performance = DeliveryPerformanceSerializer(read_only=True)


class GatewayRefSerializer(serializers.Serializer):
    name = serializers.CharField(read_only=True)
    external_order_id = serializers.CharField(read_only=True)
    external_payment_id = serializers.CharField(read_only=True)
    # client secret, redirect url...
    checkout = serializers.JSONField(read_only=True)


class PaymentHistorySerializer(serializers.Serializer):
    status = EnumValueField()
    timestamp = serializers.DateTimeField(read_only=True)
    amount = MoneyField()
    note = serializers.CharField(read_only=True)


class PaymentSerializer(serializers.Serializer):
    id = serializers.CharField(read_only=True)
    order_id = serializers.CharField(read_only=True)
    customer_id = serializers.CharField(read_only=True)
    amount = MoneyField()
    currency = serializers.CharField(read_only=True)
    method = EnumValueField()
    transaction_id = serializers.CharField(read_only=True)
    created_at = serializers.DateTimeField(read_only=True)
    status = EnumValueField()
    gateway = GatewayRefSerializer(read_only=True)
    history = PaymentHistorySerializer(many=True, read_only=True)
    attempts = serializers.IntegerField(read_only=True)
    failure_reason = serializers.CharField(read_only=True)
    refund_amount = MoneyField()
    refund_reason = serializers.CharField(read_only=True)
    refund_date = serializers.DateTimeField(read_only=True)


class DeliveryPartnerSerializer(serializers.Serializer):
    id = serializers.CharField(read_only=True)
    name = serializers.CharField(read_only=True)
    location = CoordinatesField(read_only=True)
    is_online = serializers.BooleanField(read_only=True)
    is_available = serializers.BooleanField(read_only=True)
    vehicle_type = serializers.CharField(read_only=True)
    active_order_id = serializers.CharField(read_only=True)
    last_ping_at = serializers.DateTimeField(read_only=True)


class NearbyOrderSerializer(serializers.Serializer):
    """An open order and how far it is from the partner."""
    order = OrderSerializer(source="item", read_only=True)
    distanceKm = serializers.SerializerMethodField()

    def get_distanceKm(self, match):
        return round(match.distance_km, 3)
