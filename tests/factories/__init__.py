"""
Test factories for generating realistic test data.

Uses factory_boy for declarative test data generation. Factories build
plain dicts: request payloads for the API, or keyword arguments for models.
"""

from .user import UserFactory, AdminUserFactory, AgentUserFactory
from .complaint import ComplaintPayloadFactory

__all__ = [
    "UserFactory",
    "AdminUserFactory",
    "AgentUserFactory",
    "ComplaintPayloadFactory",
]
