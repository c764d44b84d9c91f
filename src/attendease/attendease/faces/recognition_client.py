from __future__ import annotations

import logging
import threading
from typing import Optional, Sequence, Union

from botocore.exceptions import BotoCoreError, ClientError

from ..core.constants import DEFAULT_SEARCH_MATCH_THRESHOLD
from ..core.exceptions import (
    CollectionNotFound,
    DomainError,
    ImageNotFound,
    NoFaceDetected,
    RateLimited,
    RecognitionServiceUnavailable,
    ValidationError,
)
from ..storage.gateway import ObjectStorageGateway
from ..storage.model import ImageReference
from .model import FaceCandidate, FaceMatchResult, IndexedFace

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, ImageReference]

_RATE_LIMIT_CODES = {"ThrottlingException", "ProvisionedThroughputExceededException", "LimitExceededException"}
_BAD_IMAGE_CODES = {"InvalidImageFormatException", "ImageTooLargeException"}


def map_service_error(exc: Exception) -> DomainError:
    """Translate a boto3 Rekognition failure into the error taxonomy."""
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        if code == "ResourceNotFoundException":
            return CollectionNotFound()
        if code in _RATE_LIMIT_CODES:
            return RateLimited()
        if code == "InvalidParameterException":
            # Rekognition reports "no face in the image" as an invalid parameter.
            return NoFaceDetected()
        if code in _BAD_IMAGE_CODES:
            return ValidationError("Image format or size is not supported by face recognition")
        if code == "InvalidS3ObjectException":
            return ImageNotFound()
        return RecognitionServiceUnavailable(service_code=code or None)
    return RecognitionServiceUnavailable()


def _check_threshold(value: float) -> float:
    value = float(value)
    if not 0 <= value <= 100:
        raise ValidationError("Similarity threshold must be between 0 and 100")
    return value


class FaceRecognitionClient:
    """Contract wrapper around an AWS Rekognition client.

    Images can be raw bytes or storage references; object-store references are
    passed to Rekognition as S3 pointers when ``prefer_native`` is on, other
    references are fetched through the storage gateway.
    """

    def __init__(
        self,
        client,
        storage: ObjectStorageGateway,
        *,
        collection_id: Optional[str],
        search_threshold: float = DEFAULT_SEARCH_MATCH_THRESHOLD,
        prefer_native: bool = True,
    ):
        self._client = client
        self._storage = storage
        self._collection_id = (collection_id or "").strip() or None
        self._search_threshold = _check_threshold(search_threshold)
        self._prefer_native = prefer_native
        self._ready: set[str] = set()
        self._lock = threading.Lock()

    @property
    def search_threshold(self) -> float:
        return self._search_threshold

    def _collection(self, collection_id: Optional[str] = None) -> str:
        cid = collection_id or self._collection_id
        if not cid:
            raise CollectionNotFound()
        return cid

    def _call(self, operation: str, **params):
        try:
            return getattr(self._client, operation)(**params)
        except (ClientError, BotoCoreError) as exc:
            mapped = map_service_error(exc)
            logger.warning("Rekognition %s failed: %s", operation, exc)
            raise mapped from exc

    def _image(self, source: ImageSource) -> dict:
        if isinstance(source, (bytes, bytearray)):
            return {"Bytes": bytes(source)}
        if self._prefer_native:
            native = self._storage.native_image(source)
            if native is not None:
                return native
        return {"Bytes": self._storage.resolve(source).read()}

    def ensure_collection(self, collection_id: Optional[str] = None) -> None:
        cid = self._collection(collection_id)
        if cid in self._ready:
            return
        with self._lock:
            if cid in self._ready:
                return
            try:
                self._client.create_collection(CollectionId=cid)
                logger.info("Created Rekognition collection %r", cid)
            except ClientError as exc:
                if exc.response.get("Error", {}).get("Code") != "ResourceAlreadyExistsException":
                    raise map_service_error(exc) from exc
                logger.info("Rekognition collection %r already exists", cid)
            except BotoCoreError as exc:
                raise map_service_error(exc) from exc
            self._ready.add(cid)

    def search_face(
        self,
        image: ImageSource,
        *,
        max_candidates: int = 1,
        match_threshold: Optional[float] = None,
    ) -> Optional[FaceCandidate]:
        """Best candidate above the threshold, or None (also when no face is in the image)."""
        threshold = _check_threshold(self._search_threshold if match_threshold is None else match_threshold)
        cid = self._collection()
        self.ensure_collection(cid)
        try:
            resp = self._call(
                "search_faces_by_image",
                CollectionId=cid,
                Image=self._image(image),
                MaxFaces=int(max_candidates),
                FaceMatchThreshold=threshold,
            )
        except NoFaceDetected:
            return None

        matches = resp.get("FaceMatches") or []
        if not matches:
            return None
        best = max(matches, key=lambda m: float(m.get("Similarity", 0.0)))
        face = best.get("Face", {})
        return FaceCandidate(
            face_id=face["FaceId"],
            external_id=face.get("ExternalImageId"),
            similarity=float(best.get("Similarity", 0.0)),
        )

    def compare_faces(self, source: ImageSource, target: ImageSource, similarity_threshold: float) -> FaceMatchResult:
        threshold = _check_threshold(similarity_threshold)
        if source == target:
            return FaceMatchResult(similarity=100.0, matched=True, threshold=threshold)

        resp = self._call(
            "compare_faces",
            SourceImage=self._image(source),
            TargetImage=self._image(target),
            SimilarityThreshold=0.0,
        )
        similarities = [float(m.get("Similarity", 0.0)) for m in resp.get("FaceMatches") or []]
        similarity = max(similarities, default=0.0)
        return FaceMatchResult(similarity=similarity, matched=similarity >= threshold, threshold=threshold)

    def index_face(self, image: ImageSource, external_id: str) -> IndexedFace:
        cid = self._collection()
        self.ensure_collection(cid)
        resp = self._call(
            "index_faces",
            CollectionId=cid,
            Image=self._image(image),
            ExternalImageId=str(external_id),
            DetectionAttributes=["DEFAULT"],
            MaxFaces=1,
            QualityFilter="HIGH",
        )
        records = resp.get("FaceRecords") or []
        if not records:
            unindexed = resp.get("UnindexedFaces") or [{}]
            reasons = ", ".join(unindexed[0].get("Reasons") or []) or "Unknown reason"
            raise NoFaceDetected(reasons=reasons)
        face = records[0]["Face"]
        return IndexedFace(face_id=face["FaceId"], confidence=float(face.get("Confidence", 0.0)))

    def delete_faces(self, face_ids: Sequence[str]) -> None:
        if not face_ids:
            return
        cid = self._collection()
        self.ensure_collection(cid)
        self._call("delete_faces", CollectionId=cid, FaceIds=list(face_ids))
