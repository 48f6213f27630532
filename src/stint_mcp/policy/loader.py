"""Budget policy loading utilities."""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import ValidationError

from .models import BudgetPolicy


class PolicyLoadError(RuntimeError):
    """Raised when a policy file cannot be parsed or validated."""


class PolicyLoader:
    """Loads a budget policy from a YAML file on disk."""

    def __init__(self, path: Path | None = None) -> None:
        self._path = Path(path) if path is not None else None

    @property
    def path(self) -> Path | None:
        return self._path

    def load(self) -> BudgetPolicy:
        """Return the configured policy, or the defaults when no file is configured.

        A configured path that does not exist is an error.
        """

        if self._path is None:
            return BudgetPolicy()
        if not self._path.exists():
            raise PolicyLoadError(f"Policy file not found: {self._path}")

        try:
            document = yaml.safe_load(self._path.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise PolicyLoadError(f"Failed to parse YAML in {self._path}: {exc}") from exc

        if document is None:
            return BudgetPolicy()
        if not isinstance(document, dict):
            raise PolicyLoadError(f"Policy file {self._path} must contain a mapping")

        try:
            return BudgetPolicy.model_validate(document)
        except ValidationError as exc:
            raise PolicyLoadError(f"Policy validation error in {self._path}: {exc}") from exc


def load_policy(path: Path | None = None) -> BudgetPolicy:
    """Convenience wrapper for loading a policy from the provided path."""

    return PolicyLoader(path).load()


__all__ = ["BudgetPolicy", "PolicyLoadError", "PolicyLoader", "load_policy"]
