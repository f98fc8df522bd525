"""
Data factories for test data generation.

Factories use factory-boy to create realistic test data with sensible defaults.
All factories support async creation via create_async() method.

Usage:
    from tests.factories import UserFactory, PasswordResetFactory

    # Create user
    user = await UserFactory.create_async(db_session, email="custom@example.com")

    # Create an OTP record for that user
    reset, otp = await PasswordResetFactory.create_with_otp_async(db_session, user_id=user.id)
"""

from tests.factories.user import UserFactory
from tests.factories.password_reset import PasswordResetFactory

__all__ = [
    "UserFactory",
    "PasswordResetFactory",
]
