"""Custom user model for authors, followers and feed owners."""

from django.contrib.auth.models import AbstractUser
from django.core.validators import MaxLengthValidator, RegexValidator
from django.db import models


class User(AbstractUser):
    """Account that posts, follows other accounts and owns feed definitions."""

    username = models.CharField(
        max_length=30,
        unique=True,
        validators=[RegexValidator(
            regex=r'^\w{3,}$',
            message='Username must consist of at least three alphanumericals'
        )]
    )
    bio = models.TextField(
        max_length=500,
        blank=True,
        help_text="short user bio shown on profile",
        validators=[MaxLengthValidator(500)]
    )

    class Meta:
        """Default ordering for users."""
        ordering = ['username']

    def __str__(self):
        return self.username
