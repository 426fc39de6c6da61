from __future__ import annotations


class ConfigurationError(ValueError):
    """A subscription or integration setting that can never deliver as configured."""


class IntegrationValidationError(ConfigurationError):
    def __init__(self, integration_type: str, missing_fields: list[str]) -> None:
        self.integration_type = integration_type
        self.missing_fields = list(missing_fields)
        joined = ", ".join(self.missing_fields)
        super().__init__(f"Integration '{integration_type}' is missing required fields: {joined}")


class PayloadSerializationError(TypeError):
    pass
