class AuroraException(Exception):
    pass


class ConfigurationError(AuroraException):
    """Raised for missing or invalid configuration, before any API call is made."""

    def __init__(self, message: str, path: str = ""):
        super().__init__(f"{path}: {message}" if path else message)
        self.path = path


class DependencyNotSatisfied(AuroraException):
    def __init__(self, resource: str, missing: str):
        super().__init__(f"Resource {resource} can not be reconciled: {missing} is not available")
        self.resource = resource
        self.missing = missing


class GraphCycleError(AuroraException):
    pass


class ProvisionError(AuroraException):
    pass


class ResourceNotReady(ProvisionError):
    def __init__(self, resource: str, attribute: str):
        super().__init__(f"Resource {resource} has no value for {attribute} yet")
        self.resource = resource
        self.attribute = attribute
