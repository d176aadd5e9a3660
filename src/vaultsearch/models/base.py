"""
Base model shared by every vaultsearch model.
"""

from pydantic import BaseModel, ConfigDict


class VaultSearchBaseModel(BaseModel):
    """
    Base model for all vaultsearch models.
    Common configuration and enhanced validation.
    """

    model_config = ConfigDict(
        # Validate values on assignment
        validate_assignment=True,
        # Store enum values, so engine tags serialize as plain strings
        use_enum_values=True,
        # Prevent extra fields
        extra="forbid",
    )
