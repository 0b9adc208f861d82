from .docker import DockerBackend
from .local import SubprocessBackend

__all__ = ["DockerBackend", "SubprocessBackend"]
