class OrchestratorError(Exception):
    pass


class PipelineDefinitionError(OrchestratorError):
    """The pipeline document is not one provision stage followed by one configure stage."""


class InvalidStateTransition(OrchestratorError):
    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid pipeline state transition {current} -> {target}")


class StateFileError(OrchestratorError):
    pass


class RunExistsError(OrchestratorError):
    def __init__(self, run_id: str, path: str):
        self.run_id = run_id
        super().__init__(f"Run {run_id} already exists at {path}, pick another --run-id")
