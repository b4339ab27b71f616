from rest_framework import serializers

from .models import User


class UserBasicSerializer(serializers.ModelSerializer):
    """Public identity fields embedded in request and job payloads."""

    class Meta:
        model = User
        fields = ["id", "username", "role", "phone_number"]
        read_only_fields = fields
