"""Local image runtimes."""

from scanrunner.runtime.base import ImageRuntime
from scanrunner.runtime.containerd_runtime import ContainerdRuntime
from scanrunner.runtime.docker_runtime import DockerRuntime

__all__ = ["ContainerdRuntime", "DockerRuntime", "ImageRuntime"]
