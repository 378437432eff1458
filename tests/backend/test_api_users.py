import pytest
from rest_framework.test import APIClient

pytestmark = pytest.mark.django_db


def test_register_and_me():
    client = APIClient()
    response = client.post(
        "/api/v1/auth/register/",
        {"username": "kavya", "password": "pw-12345", "email": "kavya@example.in",
         "phone_number": "+919876543210", "role": "producer"},
        format="json",
    )
    assert response.status_code == 201

    client.login(username="kavya", password="pw-12345")
    me = client.get("/api/v1/auth/me/").json()
    assert me["role"] == "producer"
    assert me["phone_number"] == "+919876543210"


def test_cannot_register_as_admin():
    response = APIClient().post(
        "/api/v1/auth/register/", {"username": "root", "password": "pw-12345", "role": "admin"}, format="json"
    )
    assert response.status_code == 400
    assert "role" in response.json()
