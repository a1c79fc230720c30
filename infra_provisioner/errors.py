class ProvisionError(Exception):
    """Base class for provisioning failures."""


class PlanError(ProvisionError):
    """The desired state cannot be turned into a valid build plan."""


class ResourceCreationError(ProvisionError):
    """A cloud resource could not be created, updated or awaited.

    Resources created before the failure are left live.
    """

    def __init__(self, resource: str, message: str):
        self.resource = resource
        self.message = message
        super().__init__(f"{resource}: {message}")


class ResourceDeletionError(ProvisionError):
    def __init__(self, resource: str, message: str):
        self.resource = resource
        self.message = message
        super().__init__(f"{resource}: {message}")
