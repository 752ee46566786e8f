"""LXD calls that wait for their operations, with retrying and error recovery."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class LXOParseError(Exception):
    """Raised when an operation returns data of an unexpected shape."""


class LXO:
    """Wraps an LXD server so that every call waits for its operation.

    The server's methods raise on failure and return operation objects whose
    ``wait()`` raises when the operation failed.
    """

    def __init__(self, server: Any) -> None:
        self.server = server

    def stop_container(self, id: str, timeout: int, retries: int) -> None:
        """Stop a container, retrying and forcing the stop on the last attempt."""
        etag = ""
        last_error: Exception | None = None
        for attempt in range(retries + 1):
            request = {
                "action": "stop",
                "timeout": timeout,
                "force": attempt == retries,
            }
            operation = self.server.update_container_state(id, request, etag)
            try:
                operation.wait()
            except Exception as exc:  # the server reports failures as any exception
                if "is already stopped" in str(exc):
                    return
                last_error = exc
            else:
                return
        if last_error is not None:
            raise last_error

    def start_container(self, id: str) -> None:
        """Start a container and wait until it has started."""
        request = {"action": "start", "timeout": -1, "force": False}
        self.server.update_container_state(id, request, "").wait()

    def create_container(self, container: Any) -> None:
        """Create a container and wait until it exists."""
        self.server.create_container(container).wait()

    def update_container(self, id: str, container: Any, etag: str) -> None:
        """Update a container and wait until the change is applied."""
        self.server.update_container(id, container, etag).wait()

    def delete_container(self, id: str) -> None:
        """Delete a container and wait until it is gone."""
        self.server.delete_container(id).wait()

    def copy_image(self, source: Any, image: Any, args: Any) -> None:
        """Copy an image from ``source`` and wait until it is copied."""
        self.server.copy_image(source, image, args).wait()

    def delete_image(self, hash: str) -> None:
        """Delete an image and wait until it is gone."""
        self.server.delete_image(hash).wait()

    def create_image(self, image: Any, args: Any) -> str:
        """Create an image, wait for it and return its fingerprint."""
        operation = self.server.create_image(image, args)
        operation.wait()
        info = operation.get()
        if isinstance(info, Mapping):
            metadata = info.get("metadata") or {}
        else:
            metadata = getattr(info, "metadata", None) or {}
        fingerprint = metadata.get("fingerprint")
        if not isinstance(fingerprint, str):
            raise LXOParseError(f"parse error: {fingerprint!r}")
        return fingerprint