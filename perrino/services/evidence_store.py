"""
Almacén de evidencias fotográficas (fotos de cambio de estado y comprobantes de pago).

Las fotos se suben ANTES de la transacción que registra el movimiento; solo las URLs
resultantes viajan a la base de datos. Si la escritura posterior falla, los archivos
quedan huérfanos y el llamador repite la operación completa.
"""
import logging
import mimetypes
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from perrino.core.config import settings
from perrino.core.errors import DomainError, EvidenceUploadFailed, InvalidEvidence


logger = logging.getLogger(__name__)

STATUS_PHOTOS_FOLDER = "status-photos"
PAYMENT_RECEIPTS_FOLDER = "payment-receipts"


@dataclass(frozen=True)
class EvidenceUpload:
    data: bytes
    content_type: str
    filename: Optional[str] = None


class EvidenceStore(Protocol):
    def upload(self, data: bytes, content_type: str, folder: str) -> str:
        ...


class LocalEvidenceStore:
    """Guarda las fotos en disco y las expone como archivos estáticos."""

    def __init__(self, root: Optional[str] = None, base_url: Optional[str] = None,
                 max_bytes: Optional[int] = None):
        self.root = Path(root or settings.evidence_dir)
        self.base_url = (base_url or settings.evidence_base_url).rstrip("/")
        self.max_bytes = max_bytes or settings.evidence_max_bytes

    def upload(self, data: bytes, content_type: str, folder: str) -> str:
        if not content_type or not content_type.startswith("image/"):
            raise InvalidEvidence(f"Solo se permiten imágenes (recibido: {content_type or 'desconocido'})")
        if not data:
            raise InvalidEvidence("Archivo de evidencia vacío")
        if len(data) > self.max_bytes:
            raise InvalidEvidence(
                f"La imagen supera el tamaño máximo de {self.max_bytes // 1024} KB",
                {"size": len(data), "max_bytes": self.max_bytes},
            )

        ext = mimetypes.guess_extension(content_type) or ".bin"
        filename = f"{uuid.uuid4().hex}{ext}"
        target_dir = self.root / folder
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            (target_dir / filename).write_bytes(data)
        except OSError as exc:
            logger.error("Evidence write failed in %s: %s", target_dir, exc)
            raise EvidenceUploadFailed("No se pudo guardar la evidencia") from exc

        return f"{self.base_url}/{folder}/{filename}"


def upload_evidence(
    store: EvidenceStore,
    uploads: Sequence[EvidenceUpload],
    folder: str,
) -> List[str]:
    """Sube todas las fotos y devuelve sus URLs en el mismo orden."""
    urls = []
    for item in uploads:
        try:
            urls.append(store.upload(item.data, item.content_type, folder))
        except DomainError:
            raise
        except Exception as exc:
            logger.error("Evidence store error for %s: %s", item.filename, exc)
            raise EvidenceUploadFailed("Error al subir la evidencia") from exc
    if urls:
        logger.info("Uploaded %d evidence file(s) to %s", len(urls), folder)
    return urls


_default_store: Optional[LocalEvidenceStore] = None


def get_evidence_store() -> EvidenceStore:
    global _default_store
    if _default_store is None:
        _default_store = LocalEvidenceStore()
    return _default_store
