"""Pytest configuration and fixtures."""

from typing import List, Optional, Set

import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401
from app.database import Base
from app.orchestrator import GenerationOrchestrator
from app.services.blob_store import LocalBlobStore
from app.services.image_renderer import VARIATION_INSTRUCTIONS, NoImageReturnedError


class FakeSynthesizer:
    """Prompt synthesizer double that records calls."""

    def __init__(self, prompt: str = "A corporate headshot in a bright office.", error: Optional[Exception] = None):
        self.prompt = prompt
        self.error = error
        self.calls: List[tuple] = []

    def synthesize(self, face_count: int, office_count: int) -> str:
        self.calls.append((face_count, office_count))
        if self.error:
            raise self.error
        return self.prompt


class FakeRenderer:
    """Image renderer double returning ``image-{n}`` bytes per variation."""

    def __init__(self, fail_variations: Set[int] = frozenset(), error_factory=None, on_render=None):
        self.fail_variations = set(fail_variations)
        self.error_factory = error_factory or (lambda n: NoImageReturnedError(f"no image for {n}"))
        self.on_render = on_render
        self.calls: List[dict] = []

    def render(self, prompt, variation_instruction, face_images, office_images) -> bytes:
        index = VARIATION_INSTRUCTIONS.index(variation_instruction) + 1
        self.calls.append(
            {
                "variation": index,
                "prompt": prompt,
                "faces": len(face_images),
                "offices": len(office_images),
            }
        )
        if self.on_render:
            self.on_render(index)
        if index in self.fail_variations:
            raise self.error_factory(index)
        return f"image-{index}".encode()

    def render_freeform(self, prompt, reference_images=()) -> bytes:
        self.calls.append({"prompt": prompt, "references": len(reference_images)})
        if self.fail_variations:
            raise NoImageReturnedError("no image")
        return b"custom-image"

    @property
    def variations(self) -> List[int]:
        return [call["variation"] for call in self.calls]


@pytest.fixture(scope="function")
def session_factory():
    """Session factory over a fresh in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)

    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)

    engine.dispose()


@pytest.fixture(scope="function")
def test_db(session_factory):
    """Create a test database session for each test."""
    db = session_factory()

    yield db

    db.close()


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(str(tmp_path / "blobs"), "http://testserver")


@pytest.fixture
def reference_keys(blob_store):
    """Five face and three office references stored in the blob store."""
    face_keys = []
    for i in range(5):
        key = f"uploads/100{i}-face{i}.jpg"
        blob_store.put(key, f"face-{i}".encode(), "image/jpeg")
        face_keys.append(key)

    office_keys = []
    for i in range(3):
        key = f"uploads/200{i}-office{i}.png"
        blob_store.put(key, f"office-{i}".encode(), "image/png")
        office_keys.append(key)

    return {"face_keys": face_keys, "office_keys": office_keys}


@pytest.fixture
def sleeps():
    """Recorded backoff delays instead of real sleeping."""
    return []


@pytest.fixture
def make_orchestrator(session_factory, blob_store, sleeps):
    def _make(synthesizer=None, renderer=None):
        return GenerationOrchestrator(
            session_factory=session_factory,
            blob_store=blob_store,
            synthesizer=synthesizer or FakeSynthesizer(),
            renderer=renderer or FakeRenderer(),
            sleep=sleeps.append,
            prompt_attempts=3,
            prompt_backoff=5,
            variation_attempts=2,
            variation_backoff=10,
        )

    return _make


@pytest.fixture
def mock_transport_factory():
    """Build httpx mock transports answering every request the same way."""

    def _make(status_code: int = 200, json_body=None, requests: Optional[list] = None, error=None):
        def handler(request: httpx.Request) -> httpx.Response:
            if requests is not None:
                requests.append(request)
            if error is not None:
                raise error
            return httpx.Response(status_code, json=json_body)

        return httpx.MockTransport(handler)

    return _make
