from django.contrib.auth.models import AbstractUser
from django.db import models
from phonenumber_field.modelfields import PhoneNumberField


class User(AbstractUser):
    class Roles(models.TextChoices):
        CUSTOMER = "customer", "Customer"
        PRODUCER = "producer", "Producer"
        DELIVERY_PARTNER = "delivery_partner", "Delivery Partner"
        ADMIN = "admin", "Admin"

    # Role decides what the marketplace lets the user do
    # customer: places, pays for and rates orders
    # producer: confirms and prepares orders for its products
    # delivery_partner: accepts, picks up and delivers orders
    # admin: can view everything and issue refunds
    role = models.CharField(max_length=20, choices=Roles.choices, default=Roles.CUSTOMER)

    phone_number = PhoneNumberField(blank=True, null=True, unique=True, region="IN")

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
