class InfraVizError(Exception):
    """Base exception for the infrastructure visualizer."""
    pass


class CodeGenerationError(InfraVizError):
    """Raised when the LLM cannot produce an infrastructure program."""
    pass


class ProvisioningError(InfraVizError):
    """Raised when a Pulumi preview or deploy does not complete."""
    def __init__(self, message: str, logs: list[str] | None = None):
        self.logs = logs or []
        super().__init__(message)


class StackNotFoundError(InfraVizError):
    """Raised when a stack id has no record in either store tier."""
    def __init__(self, stack_id: str):
        self.stack_id = stack_id
        super().__init__(f'Stack "{stack_id}" not found')


class InvalidTransitionError(InfraVizError):
    """Raised when a deploy status change is not allowed."""
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move deploy status from '{current}' to '{target}'")
