"""
Shared fixtures: in-memory database, controllable clock, fake renderers.
"""
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from backend.config import Settings
from backend.persistence.database import init_db
from backend.renderers.base import DocumentRenderer, RendererSet
from backend.services.exam_service import ExamRecorder, SubmissionService
from backend.services.link_service import LinkRegistry
from shared.constants import DocumentKind
from shared.errors import RenderError
from shared.schemas import DocumentPayload


class FakeClock:
    """Manually advanced clock for expiry tests."""

    def __init__(self, start: datetime = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


class FakeRenderer(DocumentRenderer):
    """Returns tiny marker bytes; optionally fails for chosen folios."""

    def __init__(self, kind: DocumentKind, fail_folios=(), fail_always=False):
        self.kind = kind
        self.fail_folios = set(fail_folios)
        self.fail_always = fail_always
        self.calls = []

    def render(self, payload: DocumentPayload):
        self.calls.append(payload)
        folio = payload.header.folio
        if self.fail_always or folio in self.fail_folios:
            raise RenderError(f"boom {self.kind.value} {folio}")
        return self.artifact(f"{self.kind.value}:{folio}".encode("utf-8"), f"{self.kind.value}_{folio or 'x'}")


def make_answers(scores_per_case=((10, 5, 5),), **overrides):
    """A form submission with one aspect per score."""
    casos = []
    for number, scores in enumerate(scores_per_case, start=1):
        casos.append({
            "temasGuia": "Presupuesto; Riesgos\nCalendario",
            "planteamiento": f"Planteamiento {number}",
            "aspectos": [
                {"descripcion": f"Aspecto {i}", "puntaje": score}
                for i, score in enumerate(scores, start=1)
            ],
        })
    answers = {
        "modalidad": "Presencial",
        "duracionMin": 60,
        "fechaElaboracion": "01/03/2026",
        "puestoEspecialista": "Jefe de Departamento",
        "casos": casos,
    }
    answers.update(overrides)
    return answers


HEADER = {
    "convocatoria": "CONV-01/2026",
    "unidadAdministrativa": "Dirección de Sistemas",
    "concurso": "CONC-77",
    "puesto": "Analista",
    "plazaCodigo": "PZ-100",
    "jefeNombre": "María López",
    "folio": "F-001",
}


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def renderers():
    return RendererSet([FakeRenderer(kind) for kind in DocumentKind])


@pytest.fixture
def registry(engine, clock):
    return LinkRegistry(engine=engine, clock=clock)


@pytest.fixture
def recorder(engine, renderers):
    return ExamRecorder(renderers=renderers, engine=engine)


@pytest.fixture
def submissions(registry, recorder):
    return SubmissionService(links=registry, recorder=recorder)


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        public_base_url="https://api.example.test",
        form_base_url="https://form.example.test",
        default_ttl_hours=48,
    )
