class ConfiguratorError(Exception):
    pass


class TaskOrderError(ConfiguratorError):
    """The task list violates the fixed step order or a step's input is not produced earlier."""


class RemoteConnectionError(ConfiguratorError):
    """The remote management channel could not be established or was lost."""

    def __init__(self, host: str, message: str):
        self.host = host
        self.message = message
        super().__init__(f"{host}: {message}")


class TaskFailedError(ConfiguratorError):
    """A task exited non-zero; the remaining tasks were not run."""

    def __init__(self, task: str, host: str, exit_code: int, stderr: str):
        self.task = task
        self.host = host
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"task {task!r} failed on {host} (exit {exit_code}): {stderr.strip()}")
