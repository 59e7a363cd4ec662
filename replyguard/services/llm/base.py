from abc import ABC, abstractmethod
from typing import List


class ModelClient(ABC):
    """Remote generation/embedding model. Its output is never trusted as-is."""

    @abstractmethod
    def generate_text(self, prompt: str, context: str = "") -> str:
        """Generate text for a prompt, optionally grounded in context."""

    @abstractmethod
    def generate_embedding(self, text: str) -> List[float]:
        """Embed text into a vector."""

    @abstractmethod
    def health_check(self) -> None:
        """Raise if the upstream API is unreachable."""
