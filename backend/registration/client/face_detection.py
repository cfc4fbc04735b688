"""
Face Detection: checks that an uploaded photo shows exactly one face and
estimates the characteristics used to pick an avatar.

Two classifiers implement the same capability, ``assess(upload, image)``:

1. RemoteFaceClassifier: posts the photo to the face-analysis service,
   first with the fast detector (tiny) and, when it finds nothing, with
   the thorough one (ssd). Failures come back as a DetectionResult that
   carries a ClassifierUnavailable error instead of raising.
2. HeuristicFaceClassifier: no model at all, only accepts photos of at
   least 100x100 pixels.

FaceDetection owns the model-loading state (IDLE -> LOADING -> READY) and
picks a classifier; when the remote one reports itself unavailable, the
heuristic decides. The acceptance policy is permissive on purpose: the
remote model is optional and face presence is best-effort.
"""

from __future__ import annotations

import asyncio
import enum
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import httpx
from PIL import Image, ImageStat

from registration.client.images import UploadedImage
from registration.errors import ClassifierUnavailable
from registration.logging_config import get_logger, log_with_context

logger = get_logger("face")

MIN_DETECTION_SCORE = 0.3
MIN_IMAGE_SIDE = 100
SKIN_SAMPLE_SIZE = 20

TINY_DETECTOR_PARAMS = {"detector": "tiny", "input_size": 416, "score_threshold": MIN_DETECTION_SCORE}
SSD_DETECTOR_PARAMS = {"detector": "ssd", "min_confidence": MIN_DETECTION_SCORE}

NO_FACE_MESSAGE = "No human face detected in the image. Please upload a clear photo of your face."
MULTIPLE_FACES_MESSAGE = "Multiple faces detected. Please upload a photo with only one person."
LOW_CONFIDENCE_MESSAGE = "Face detected with low confidence. Avatar may not match perfectly."
NO_LANDMARKS_MESSAGE = "Face detected. Avatar will be generated."
TOO_SMALL_MESSAGE = "Image is too small. Please upload a larger photo."
HEURISTIC_ACCEPT_MESSAGE = "Image accepted. Please ensure it contains a clear face photo."
UNVERIFIED_MESSAGE = "Could not verify face. Proceeding with upload."

Point = Tuple[float, float]


class ModelState(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"


@dataclass
class Box:
    x: float
    y: float
    width: float
    height: float


@dataclass
class Detection:
    """One face found by the remote classifier."""
    score: float
    box: Box
    landmarks: Optional[List[Point]] = None
    age: Optional[float] = None
    gender: Optional[str] = None
    glasses: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Detection":
        box = data["box"]
        landmarks = data.get("landmarks")
        return cls(
            score=float(data["score"]),
            box=Box(float(box["x"]), float(box["y"]), float(box["width"]), float(box["height"])),
            landmarks=[(float(x), float(y)) for x, y in landmarks] if landmarks else None,
            age=float(data["age"]) if data.get("age") is not None else None,
            gender=data.get("gender"),
            glasses=float(data["glasses"]) if data.get("glasses") is not None else None,
        )


@dataclass
class DetectionResult:
    detections: List[Detection] = field(default_factory=list)
    error: Optional[ClassifierUnavailable] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FacialCharacteristics:
    gender: str = "neutral"
    age: int = 25
    skin_tone: str = "medium"
    has_glasses: bool = False
    face_shape: str = "oval"


@dataclass
class FaceValidation:
    valid: bool
    error: Optional[str] = None
    warning: bool = False
    message: Optional[str] = None
    characteristics: Optional[FacialCharacteristics] = None
    unavailable: Optional[ClassifierUnavailable] = None

    @classmethod
    def classifier_unavailable(cls, error: ClassifierUnavailable) -> "FaceValidation":
        return cls(valid=False, error=error.message, unavailable=error)


def validate_detections(detections: Sequence[Detection]) -> FaceValidation:
    """
    Decide whether the detections describe a usable portrait.

    - no face         -> reject
    - several faces   -> reject
    - low score       -> accept with warning
    - landmarks found -> accept
    - anything else   -> accept with warning
    """
    if not detections:
        return FaceValidation(False, error=NO_FACE_MESSAGE)

    if len(detections) > 1:
        return FaceValidation(False, error=MULTIPLE_FACES_MESSAGE)

    detection = detections[0]
    if detection.score < MIN_DETECTION_SCORE:
        return FaceValidation(True, warning=True, message=LOW_CONFIDENCE_MESSAGE)

    if detection.landmarks:
        return FaceValidation(True)

    return FaceValidation(True, warning=True, message=NO_LANDMARKS_MESSAGE)


def analyze_skin_tone(image: Optional[Image.Image], box: Box) -> str:
    """Bucket the mean brightness of a 20x20 sample at the centre of the face."""
    if image is None:
        return "medium"
    try:
        center_x = box.x + box.width / 2
        center_y = box.y + box.height / 2
        half = SKIN_SAMPLE_SIZE / 2
        region = image.convert("RGB").crop((
            int(center_x - half), int(center_y - half),
            int(center_x + half), int(center_y + half),
        ))
        r, g, b = ImageStat.Stat(region).mean[:3]
    except (ValueError, OSError, ZeroDivisionError) as e:
        log_with_context(logger, "WARNING", "Skin tone analysis failed", extra_data={"error": str(e)})
        return "medium"

    brightness = (r + g + b) / 3
    if brightness > 200:
        return "light"
    if brightness > 150:
        return "medium-light"
    if brightness > 100:
        return "medium"
    if brightness > 50:
        return "medium-dark"
    return "dark"


def analyze_face_shape(landmarks: Sequence[Point]) -> str:
    """Width/height ratio of the 68-point jaw outline."""
    try:
        jaw = landmarks[0:17]
        face_width = abs(jaw[0][0] - jaw[16][0])
        face_height = abs(jaw[8][1] - landmarks[27][1])
        ratio = face_width / face_height
    except (IndexError, TypeError, ZeroDivisionError):
        return "oval"

    if ratio > 0.9:
        return "round"
    if ratio > 0.75:
        return "oval"
    if ratio > 0.65:
        return "heart"
    return "long"


def analyze_facial_characteristics(detection: Detection,
                                   image: Optional[Image.Image]) -> FacialCharacteristics:
    characteristics = FacialCharacteristics()

    if detection.gender:
        characteristics.gender = detection.gender
        if detection.age is not None:
            characteristics.age = int(round(detection.age))

    characteristics.skin_tone = analyze_skin_tone(image, detection.box)

    if detection.landmarks:
        characteristics.face_shape = analyze_face_shape(detection.landmarks)
    if detection.glasses is not None:
        characteristics.has_glasses = detection.glasses > 0.5

    log_with_context(logger, "DEBUG", "Analyzed facial characteristics",
                     extra_data={"gender": characteristics.gender, "age": characteristics.age,
                                 "skin_tone": characteristics.skin_tone,
                                 "face_shape": characteristics.face_shape})
    return characteristics


class RemoteFaceClassifier:
    """Client for the face-analysis service (detection, landmarks, age, gender)."""

    def __init__(self, base_url: str, client: httpx.AsyncClient):
        self.base_url = base_url.rstrip("/")
        self.client = client

    async def load_models(self) -> bool:
        try:
            response = await self.client.post(f"{self.base_url}/models/load")
            response.raise_for_status()
        except httpx.HTTPError as e:
            log_with_context(logger, "ERROR", "Error loading face models",
                             extra_data={"error": str(e)})
            return False
        log_with_context(logger, "INFO", "Face models loaded")
        return True

    async def _detect(self, upload: UploadedImage, params: dict) -> List[Detection]:
        response = await self.client.post(
            f"{self.base_url}/detect",
            params=params,
            files={"image": (upload.filename, upload.data, upload.content_type)},
        )
        response.raise_for_status()
        return [Detection.from_dict(d) for d in response.json()["detections"]]

    async def try_detect(self, upload: UploadedImage) -> DetectionResult:
        """Fast detector first, thorough detector when the fast one finds nothing."""
        try:
            detections = await self._detect(upload, TINY_DETECTOR_PARAMS)
            log_with_context(logger, "INFO", "Tiny detector found {} faces".format(len(detections)))
            if not detections:
                detections = await self._detect(upload, SSD_DETECTOR_PARAMS)
                log_with_context(logger, "INFO", "SSD detector found {} faces".format(len(detections)))
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            log_with_context(logger, "ERROR", "Face analysis error", extra_data={"error": str(e)})
            return DetectionResult(error=ClassifierUnavailable(str(e) or type(e).__name__))
        return DetectionResult(detections)

    async def assess(self, upload: UploadedImage, image: Optional[Image.Image]) -> FaceValidation:
        result = await self.try_detect(upload)
        if not result.ok:
            return FaceValidation.classifier_unavailable(result.error)

        validation = validate_detections(result.detections)
        if validation.valid and result.detections[0].gender:
            validation.characteristics = analyze_facial_characteristics(result.detections[0], image)
        elif validation.valid:
            log_with_context(logger, "WARNING", "No gender/age data available, using fallback avatar")
        return validation


class HeuristicFaceClassifier:
    """Accepts any photo of at least 100x100 pixels."""

    def __init__(self, min_side: int = MIN_IMAGE_SIDE):
        self.min_side = min_side

    async def assess(self, upload: UploadedImage, image: Optional[Image.Image]) -> FaceValidation:
        if image is None:
            return FaceValidation(True, warning=True, message=UNVERIFIED_MESSAGE)

        width, height = image.size
        if width < self.min_side or height < self.min_side:
            return FaceValidation(False, error=TOO_SMALL_MESSAGE)

        return FaceValidation(True, warning=True, message=HEURISTIC_ACCEPT_MESSAGE)


class FaceDetection:
    """
    Model-loading state plus classifier selection.

    Loading is best-effort: wait_for_load() polls up to ``max_polls`` times
    every ``poll_interval`` seconds and then carries on as READY, in which
    case the heuristic classifier is used.
    """

    def __init__(self, remote: Optional[RemoteFaceClassifier] = None,
                 fallback: Optional[HeuristicFaceClassifier] = None,
                 max_polls: int = 100, poll_interval: float = 0.1):
        self.remote = remote
        self.fallback = fallback or HeuristicFaceClassifier()
        self.max_polls = max_polls
        self.poll_interval = poll_interval
        self.state = ModelState.IDLE
        self.models_available = False
        self._load_task: Optional[asyncio.Task] = None

    def start(self):
        """Begin loading models in the background."""
        if self.state is not ModelState.IDLE:
            return
        if self.remote is None:
            self.state = ModelState.READY
            return
        self.state = ModelState.LOADING
        self._load_task = asyncio.get_running_loop().create_task(self.initialize())

    async def initialize(self):
        self.state = ModelState.LOADING
        log_with_context(logger, "INFO", "Loading face models...")
        self.models_available = await self.remote.load_models()
        if not self.models_available:
            log_with_context(logger, "WARNING", "Face detection will use fallback method")
        self.state = ModelState.READY

    async def wait_for_load(self):
        if self.state is ModelState.IDLE:
            self.start()

        polls = 0
        while self.state is not ModelState.READY and polls < self.max_polls:
            await asyncio.sleep(self.poll_interval)
            polls += 1

        if self.state is not ModelState.READY:
            log_with_context(logger, "WARNING", "Face detection timeout - using fallback",
                             extra_data={"polls": polls})
            self.state = ModelState.READY

    def select_classifier(self):
        if self.remote is not None and self.models_available:
            return self.remote
        return self.fallback

    async def assess(self, upload: UploadedImage, image: Optional[Image.Image]) -> FaceValidation:
        await self.wait_for_load()

        classifier = self.select_classifier()
        validation = await classifier.assess(upload, image)
        if validation.unavailable is not None:
            log_with_context(logger, "WARNING", "Classifier unavailable, using fallback validation",
                             extra_data={"error": validation.unavailable.message})
            validation = await self.fallback.assess(upload, image)
        return validation

    async def close(self):
        if self._load_task is not None and not self._load_task.done():
            self._load_task.cancel()
            try:
                await self._load_task
            except asyncio.CancelledError:
                pass
