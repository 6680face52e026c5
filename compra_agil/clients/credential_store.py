"""File-backed store for the credential bundle."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from compra_agil.core.errors import CredentialStoreError
from compra_agil.models.credentials import CredentialBundle


class CredentialStore:
    """Read and atomically rewrite the JSON credential document.

    There is no file locking: concurrent pipeline runs against the same file
    must be serialized by the caller.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def exists(self) -> bool:
        return self._path.exists()

    def load(self) -> CredentialBundle:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise CredentialStoreError(
                f"Unable to read {self._path.name}: {exc}"
            ) from exc

        try:
            document = json.loads(raw)
        except ValueError as exc:
            raise CredentialStoreError(
                f"Invalid {self._path.name} format: {exc}"
            ) from exc

        if not isinstance(document, dict):
            raise CredentialStoreError(
                f"Invalid {self._path.name} format: expected a JSON object."
            )
        if not isinstance(document.get("cookies"), list):
            document["cookies"] = []

        try:
            return CredentialBundle.model_validate(document)
        except ValidationError as exc:
            raise CredentialStoreError(
                f"Invalid {self._path.name} records: {exc}"
            ) from exc

    def save(self, bundle: CredentialBundle) -> None:
        """Rewrite the whole document via a temp file and an atomic rename."""
        directory = self._path.parent
        payload = json.dumps(bundle.to_document(), indent=2)
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=directory
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(tmp_name, self._path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise CredentialStoreError(
                f"Unable to write {self._path.name}: {exc}"
            ) from exc


__all__ = ["CredentialStore"]
