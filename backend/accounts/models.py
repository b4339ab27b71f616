from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model with role selection"""
    ROLE_REQUESTER = 'requester'
    ROLE_OPERATOR = 'operator'
    ROLE_CHOICES = [
        (ROLE_REQUESTER, 'Requester'),
        (ROLE_OPERATOR, 'Operator'),
    ]

    # Role & basic info
    role = models.CharField(max_length=10, choices=ROLE_CHOICES)
    phone_number = models.CharField(max_length=15, blank=True)

    class Meta:
        db_table = 'users'

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"

    @property
    def is_operator(self):
        return self.role == self.ROLE_OPERATOR

    @property
    def is_requester(self):
        return self.role == self.ROLE_REQUESTER
