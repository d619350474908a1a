from __future__ import annotations

from dataclasses import replace
from decimal import Decimal
from pathlib import Path
import json
import logging
import os

from fatura.documents import (
    CertifiedDocumentError,
    DocumentNotFoundError,
    document_from_dict,
    document_to_dict,
)
from fatura.models import DOCUMENT_KINDS, CashClosure, Document
from fatura.money import plain
from fatura.totals import document_totals
from fatura.utils import sanitize_folder_name

log = logging.getLogger(__name__)


def resolve_company_id(company_id: str | None = None) -> str:
    """Return ``company_id`` or ``FATURA_COMPANY_ID``; raise if neither is set."""
    value = (company_id or os.getenv("FATURA_COMPANY_ID") or "").strip()
    if not value:
        raise ValueError(
            "company id is required (pass it explicitly or set FATURA_COMPANY_ID)"
        )
    return value


class DocumentStore:
    """JSON snapshot store, one file per document.

    Layout::

        <root>/<company_id>/invoices/<id>.json
        <root>/<company_id>/purchases/<id>.json
        <root>/<company_id>/closures/<id>.json

    The company id is part of the store configuration and is stamped on
    every saved document.
    """

    def __init__(self, root: Path | str, company_id: str):
        if not company_id or not str(company_id).strip():
            raise ValueError("company id is required")
        self.root = Path(root)
        self.company_id = str(company_id).strip()
        self.base = self.root / sanitize_folder_name(self.company_id)

    def _dir(self, kind: str) -> Path:
        if kind not in DOCUMENT_KINDS and kind != "closure":
            raise ValueError(f"Unknown document kind: {kind!r}")
        return self.base / f"{kind}s"

    def _path(self, kind: str, doc_id: str) -> Path:
        return self._dir(kind) / f"{sanitize_folder_name(str(doc_id))}.json"

    def _read(self, path: Path) -> dict:
        return json.loads(path.read_text(encoding="utf-8"))

    def _write(self, path: Path, data: dict) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_suffix(".tmp")
        tmp.write_text(
            json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8"
        )
        tmp.replace(path)

    def save(self, doc: Document) -> Document:
        """Write a snapshot of ``doc`` and return the stored version.

        Overwriting a certified snapshot raises
        :class:`~fatura.documents.CertifiedDocumentError`.
        """
        path = self._path(doc.kind, doc.id)
        if path.exists():
            try:
                current = self._read(path)
            except (OSError, ValueError) as exc:
                log.error("Error reading %s: %s", path, exc)
                current = {}
            if current.get("is_certified"):
                raise CertifiedDocumentError(
                    f"{doc.kind} {doc.id} is certified and read-only"
                )

        if not (doc.is_certified and doc.totals):
            doc = replace(doc, totals=document_totals(doc))
        data = document_to_dict(doc)
        data["company_id"] = self.company_id
        self._write(path, data)
        log.info("Saved %s %s to %s", doc.kind, doc.id, path)
        return document_from_dict(data)

    def get(self, kind: str, doc_id: str) -> Document:
        path = self._path(kind, doc_id)
        if not path.exists():
            raise DocumentNotFoundError(f"{kind} {doc_id} not found")
        return document_from_dict(self._read(path))

    def list_documents(self, kind: str) -> list[Document]:
        """Return all documents of ``kind``; unreadable files are skipped."""
        folder = self._dir(kind)
        docs: list[Document] = []
        if not folder.exists():
            return docs
        for path in sorted(folder.glob("*.json")):
            try:
                docs.append(document_from_dict(self._read(path)))
            except (OSError, ValueError, KeyError) as exc:
                log.warning("Skipping unreadable snapshot %s: %s", path, exc)
        log.debug("Loaded %s %ss from %s", len(docs), kind, folder)
        return docs

    def save_closure(self, closure: CashClosure) -> Path:
        data = {
            k: (plain(v) if isinstance(v, Decimal) else v)
            for k, v in closure.as_dict().items()
        }
        data["company_id"] = self.company_id
        path = self._path("closure", closure.id)
        self._write(path, data)
        log.info("Saved cash closure %s to %s", closure.id, path)
        return path

    def list_closures(self) -> list[dict]:
        folder = self._dir("closure")
        if not folder.exists():
            return []
        out = []
        for path in sorted(folder.glob("*.json")):
            try:
                out.append(self._read(path))
            except (OSError, ValueError) as exc:
                log.warning("Skipping unreadable closure %s: %s", path, exc)
        return out
